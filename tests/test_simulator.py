""" Test cases for structural checks and critical path simulation """

import pytest

from luxstory import dialog, navigator, simulator, state as st
from . import make_state, make_registry, make_graph, node_data, choice_data

def simulate(registry:dialog.GraphRegistry, start:str="start", max_steps:int=30, max_states:int=8000, **patterns:float) -> simulator.SimulationReport:
    nav = navigator.Navigator(registry, affinities={}, unlock_tables={})
    sim = simulator.GraphSimulator(registry, nav, max_steps=max_steps, max_states=max_states)
    return sim.simulate(make_state(characters=("tester",), node_id=start, character_id="tester", **patterns), start)

def test_soft_deadlock():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_stuck", "stuck")]),
        node_data("stuck", [
            choice_data("wait", "end", enabled=["8 <= patience"]),
            choice_data("wait_more", "end", enabled=["8 <= patience"]),
        ]),
        node_data("end", tags=["terminal"]),
    ]))
    report = simulate(registry)

    deadlocks = report.by_type(simulator.ViolationType.SOFT_DEADLOCK)
    assert len(deadlocks) == 1
    deadlock = deadlocks[0]
    assert deadlock.node_id == "stuck"
    assert deadlock.character_id == "tester"
    assert deadlock.trace == (simulator.TraceStep("start"), simulator.TraceStep("stuck", "to_stuck"))
    assert [c.choice_id for c in deadlock.choice_snapshot] == ["wait", "wait_more"]
    assert all(c.visible and not c.enabled for c in deadlock.choice_snapshot)
    assert deadlock.choice_snapshot[0].reasons == ("Need patience at least 8 (have 0)",)

    assert report.summary()["soft_deadlock"] == 1
    assert report.summary()["missing_node"] == 0
    assert not report.ok
    assert "end" not in report.visited_node_ids

    # with enough patience there's no deadlock
    assert simulate(registry, patience=8).ok

def test_terminal_nodes_may_be_stuck():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_stuck", "stuck")]),
        node_data("stuck", [choice_data("wait", "start", enabled=["8 <= patience"])], tags=["session_boundary"]),
    ]))
    assert simulate(registry).ok

def test_missing_node():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_end", "end"), choice_data("to_ghost", "ghost")]),
        node_data("end", tags=["terminal"]),
    ]))
    report = simulate(registry)

    missing = report.by_type(simulator.ViolationType.MISSING_NODE)
    assert len(missing) == 1
    assert missing[0].node_id == "ghost"
    assert missing[0].character_id is None
    assert missing[0].trace[0] == simulator.TraceStep("start")
    assert missing[0].trace[-1] == simulator.TraceStep("ghost", "to_ghost")
    assert "end" in report.visited_node_ids

def test_traces_are_shortest():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_mid", "mid"), choice_data("to_ghost", "ghost")]),
        node_data("mid", [choice_data("to_ghost", "ghost")]),
    ]))
    report = simulate(registry)

    missing = report.by_type(simulator.ViolationType.MISSING_NODE)
    assert len(missing) == 1
    assert missing[0].trace == (simulator.TraceStep("start"), simulator.TraceStep("ghost", "to_ghost"))
    assert report.occurrences[(simulator.ViolationType.MISSING_NODE, "ghost", "to_ghost")] == 2

def test_required_state_violation_keeps_exploring():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_gated", "gated")]),
        node_data("gated", [choice_data("to_end", "end")], required_state=["flag:ready"]),
        node_data("end", tags=["terminal"]),
    ]))
    report = simulate(registry)

    violations = report.by_type(simulator.ViolationType.REQUIRED_STATE_VIOLATION)
    assert len(violations) == 1
    assert violations[0].node_id == "gated"
    assert "ready" in violations[0].details
    assert "end" in report.visited_node_ids

def test_on_enter_applies_before_choices():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_door", "door")]),
        node_data("door", [choice_data("open", "end", enabled=["flag:key"])], on_enter=[{"add_global_flags": ["key"]}]),
        node_data("end", tags=["terminal"]),
    ]))
    report = simulate(registry)
    assert report.ok
    assert "end" in report.visited_node_ids

def test_bounds_on_cycles():
    registry = make_registry(make_graph("tester", [
        node_data("a", [choice_data("to_b", "b", pattern="exploring")]),
        node_data("b", [choice_data("to_a", "a", pattern="helping")]),
    ]))

    # every step is a new state, only the bounds stop this
    report = simulate(registry, start="a", max_steps=10)
    assert report.expanded_states == 11
    assert not report.hit_max_states
    assert report.ok

    report = simulate(registry, start="a", max_steps=100, max_states=5)
    assert report.expanded_states == 5
    assert report.hit_max_states

def test_cycles_without_change_terminate():
    registry = make_registry(make_graph("tester", [
        node_data("a", [choice_data("to_b", "b")]),
        node_data("b", [choice_data("to_a", "a")]),
    ]))
    report = simulate(registry, start="a", max_steps=1000)
    assert report.expanded_states == 2
    assert report.visited_node_ids == {"a", "b"}

def test_bad_bounds(registry:dialog.GraphRegistry):
    with pytest.raises(ValueError):
        simulator.GraphSimulator(registry, max_steps=-1)

def test_builtin_content_simulates_cleanly(player_state:st.PlayerState):
    report = simulator.simulate_critical_path(player_state, "samuel_intro", max_steps=10, max_states=2000)
    assert report.ok, report.violations
    assert {"samuel_intro", "samuel_hub", "maya_robot", "maya_goodbye", "samuel_farewell"} <= report.visited_node_ids

def test_simulation_is_deterministic(registry:dialog.GraphRegistry, player_state:st.PlayerState):
    def run() -> simulator.SimulationReport:
        return simulator.GraphSimulator(registry, max_steps=12, max_states=300).simulate(player_state, "samuel_intro")

    first = run()
    second = run()
    assert first.violations == second.violations
    assert first.expanded_states == second.expanded_states
    assert first.visited_node_ids == second.visited_node_ids
    assert first.expanded_states <= 300

def test_check_structure():
    registry = make_registry(make_graph("tester", [
        node_data("start", [choice_data("to_a", "a"), choice_data("to_ghost", "ghost")]),
        node_data("a", [
            choice_data("back", "start"),
            choice_data("to_rare", "rare", visible=["100 <= patience"]),
        ], interrupt={"target": "c"}),
        node_data("c", tags=["terminal"]),
        node_data("rare", tags=["terminal"]),
        node_data("lonely", [choice_data("to_start", "start")]),
    ]))
    report = simulator.check_structure(registry, unlock_tables={})

    assert report.reachable == {"start", "a", "c", "rare"}
    assert report.unreachable == ["lonely"]
    assert report.orphans == ["lonely"]
    assert report.dangling == [("start", "ghost")]
    assert sorted(v.type.value for v in report.violations) == ["dangling_reference", "orphan_node"]
    assert not report.ok

def test_check_structure_unlock_targets(registry:dialog.GraphRegistry):
    report = simulator.check_structure(registry)
    assert report.ok, report.violations
    assert "maya_workshop_invitation" in report.reachable
    assert report.unreachable == []

    # without the unlock tables, unlock targets have no way in
    report = simulator.check_structure(registry, unlock_tables={})
    assert "maya_workshop_invitation" in report.orphans

def test_check_structure_bad_entry(registry:dialog.GraphRegistry):
    report = simulator.check_structure(registry, entry_node_ids=["samuel_intro", "nowhere"])
    assert ("<entry>", "nowhere") in report.dangling
