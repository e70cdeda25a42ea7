""" Graph validation

Two complementary checks over authored dialog graphs:

check_structure: state-free reachability. Follows every choice target,
interrupt target and pattern unlock target from the entry nodes and reports
dangling references and orphaned nodes.

GraphSimulator: bounded breadth first exploration of actual play. Starting
from a real player state it replays the same Navigator logic used at runtime
over every enabled choice, collecting missing nodes, required state
violations and soft deadlocks along with the shortest choice trace that
reproduces each one.
"""

import enum
import logging
import collections
import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from typing import Optional

from luxstory import config, util, dialog, navigator as nav, unlocks, state as st

logger = logging.getLogger(__name__)

class ViolationType(enum.Enum):
    MISSING_NODE = "missing_node"
    REQUIRED_STATE_VIOLATION = "required_state_violation"
    SOFT_DEADLOCK = "soft_deadlock"
    DANGLING_REFERENCE = "dangling_reference"
    ORPHAN_NODE = "orphan_node"

@dataclasses.dataclass(frozen=True)
class TraceStep:
    node_id:str
    # the choice that led to node_id, None for the start node
    choice_id:Optional[str] = None

@dataclasses.dataclass(frozen=True)
class ChoiceSnapshot:
    choice_id:str
    node_id:str
    text:str
    visible:bool
    enabled:bool
    reasons:tuple[str, ...] = ()

@dataclasses.dataclass(frozen=True)
class Violation:
    type:ViolationType
    node_id:str
    character_id:Optional[str]
    details:str
    trace:tuple[TraceStep, ...] = ()
    choice_snapshot:tuple[ChoiceSnapshot, ...] = ()

@dataclasses.dataclass
class StructureReport:
    reachable:set[str]
    orphans:list[str]
    dangling:list[tuple[str, str]]
    violations:list[Violation]
    unreachable:list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

def check_structure(
        registry:dialog.GraphRegistry,
        entry_node_ids:Optional[Iterable[str]]=None,
        unlock_tables:Optional[Mapping[str, Sequence[unlocks.PatternUnlock]]]=None) -> StructureReport:
    """
    Checks graph connectivity ignoring player state entirely.

    A node reachable only under rare state is still connected, conditions are
    never evaluated here.

    Parameters
    ----------
    registry : GraphRegistry
        the graphs to check
    entry_node_ids : iterable of str
        where play can start, defaults to every graph's root
    unlock_tables : mapping of character id to unlock definitions
        pattern unlock targets count as references from their character's
        graph. Defaults to the configured tables.

    Returns
    -------
    out : StructureReport
    """

    if entry_node_ids is None:
        entries = [g.root_id for g in registry]
    else:
        entries = list(entry_node_ids)
    if unlock_tables is None:
        unlock_tables = unlocks.load_unlock_tables()

    all_nodes = registry.node_ids()
    incoming:dict[str, set[str]] = collections.defaultdict(set)
    edges:dict[str, list[str]] = collections.defaultdict(list)
    violations = []
    dangling = []

    def refer(source:str, target:str, character_id:Optional[str], how:str) -> None:
        if target not in all_nodes:
            dangling.append((source, target))
            violations.append(Violation(
                ViolationType.DANGLING_REFERENCE, source, character_id,
                f'{how} in "{source}" refers to missing node "{target}"',
            ))
            return
        edges[source].append(target)
        if target != source:
            incoming[target].add(source)

    for graph in registry:
        for node in graph.nodes.values():
            for choice in node.choices:
                refer(node.node_id, choice.node_id, graph.character_id, f'choice {choice.choice_id}')
            if node.interrupt_target is not None:
                refer(node.node_id, node.interrupt_target, graph.character_id, "interrupt")
        # any node of a character's graph can surface that character's unlocks
        for u in unlock_tables.get(graph.character_id, ()):
            if u.node_id not in all_nodes:
                refer(f'unlock:{graph.character_id}', u.node_id, graph.character_id, "pattern unlock")
                continue
            for node_id in graph.nodes:
                refer(node_id, u.node_id, graph.character_id, "pattern unlock")

    for entry in entries:
        if entry not in all_nodes:
            dangling.append(("<entry>", entry))
            violations.append(Violation(ViolationType.DANGLING_REFERENCE, entry, None, f'entry node "{entry}" does not exist'))

    reachable = set()
    queue = collections.deque(e for e in entries if e in all_nodes)
    while queue:
        node_id = queue.popleft()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        queue.extend(t for t in edges[node_id] if t not in reachable)

    orphans = []
    for graph in registry:
        for node_id in graph.nodes:
            if node_id not in incoming and node_id not in entries:
                orphans.append(node_id)
                violations.append(Violation(
                    ViolationType.ORPHAN_NODE, node_id, graph.character_id,
                    f'nothing refers to "{node_id}"',
                ))

    unreachable = sorted(all_nodes - reachable)
    logger.debug(f'structure: {len(reachable)} reachable, {len(unreachable)} unreachable, {len(orphans)} orphans, {len(dangling)} dangling')
    return StructureReport(reachable, orphans, dangling, violations, unreachable)

@dataclasses.dataclass
class SimulationReport:
    violations:list[Violation]
    expanded_states:int
    hit_max_states:bool
    visited_node_ids:set[str]
    # how many distinct states hit each reported violation
    occurrences:dict[tuple[ViolationType, str, Optional[str]], int] = dataclasses.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.violations

    def summary(self) -> dict[str, int]:
        counts = collections.Counter(v.type.value for v in self.violations)
        return {t.value: counts.get(t.value, 0) for t in ViolationType}

    def by_type(self, violation_type:ViolationType) -> list[Violation]:
        return [v for v in self.violations if v.type == violation_type]

def state_key(node_id:str, state:st.PlayerState, character_id:Optional[str]) -> str:
    """ a coarse signature of state at node_id, states sharing it are
    explored once """
    patterns = ",".join(str(v) for v in state.patterns.vector())
    flags = util.sorted_join(state.global_flags)
    char_key = ""
    if character_id is not None:
        cs = state.character(character_id)
        if cs is not None:
            char_key = f't{cs.trust}|r{cs.relationship.value}|k{len(cs.knowledge_flags)}|u{len(cs.visited_unlocks)}'
        else:
            char_key = "missing_char"
    return f'{node_id}|{character_id or "unknown"}|{patterns}|{flags}|{char_key}'

def _snapshot(evaluated:Iterable[nav.EvaluatedChoice]) -> tuple[ChoiceSnapshot, ...]:
    return tuple(
        ChoiceSnapshot(e.choice.choice_id, e.choice.node_id, e.choice.text, e.visible, e.enabled, e.reasons)
        for e in evaluated
    )

class GraphSimulator:
    """ Bounded, deterministic breadth first simulation of play.

    Breadth first means every reported trace is a shortest path from the
    start node. Cycles (hub nodes) are cut by deduplicating on state_key, and
    max_steps/max_states bound the run regardless of graph shape. """

    def __init__(
            self,
            registry:dialog.GraphRegistry,
            navigator:Optional[nav.Navigator]=None,
            max_steps:Optional[int]=None,
            max_states:Optional[int]=None,
            terminal_tags:Optional[Iterable[str]]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.registry = registry
        self.navigator = navigator if navigator is not None else nav.Navigator(registry)
        self.max_steps = max_steps if max_steps is not None else config.Settings.simulator.MAX_STEPS
        self.max_states = max_states if max_states is not None else config.Settings.simulator.MAX_STATES
        self.terminal_tags = frozenset(terminal_tags if terminal_tags is not None else config.Settings.simulator.TERMINAL_TAGS)
        if self.max_steps < 0 or self.max_states < 0:
            raise ValueError("simulation bounds must be non-negative")

    def simulate(self, initial_state:st.PlayerState, start_node_id:Optional[str]=None) -> SimulationReport:
        if start_node_id is None:
            start_node_id = initial_state.current_node_id
        if initial_state.current_node_id != start_node_id:
            found = self.registry.find_owning_graph(start_node_id, initial_state)
            initial_state = st.move_to(initial_state, start_node_id, found[0] if found else None)

        violations:list[Violation] = []
        occurrences:dict[tuple[ViolationType, str, Optional[str]], int] = {}

        def report(violation:Violation, detail_key:Optional[str]=None) -> None:
            # the first (shortest) trace is kept, repeats are only counted
            key = (violation.type, violation.node_id, detail_key)
            if key not in occurrences:
                occurrences[key] = 0
                violations.append(violation)
                self.logger.info(f'{violation.type.value} at {violation.node_id}: {violation.details}')
            occurrences[key] += 1

        queue:collections.deque[tuple[str, st.PlayerState, tuple[TraceStep, ...], int]] = collections.deque()
        queue.append((start_node_id, initial_state, (TraceStep(start_node_id),), 0))
        seen:set[str] = set()
        visited_node_ids:set[str] = set()
        expanded = 0
        hit_max_states = False

        while queue:
            node_id, state, trace, depth = queue.popleft()
            if depth > self.max_steps:
                continue
            if expanded >= self.max_states:
                hit_max_states = True
                break

            location = self.navigator.locate(node_id, state)
            if isinstance(location, nav.NavigationError):
                report(Violation(
                    ViolationType.MISSING_NODE, node_id, None,
                    f'could not find node "{node_id}" in any graph',
                    trace,
                ), trace[-1].choice_id)
                continue

            character_id = location.character_id
            node = location.node
            key = state_key(node_id, state, character_id)
            if key in seen:
                continue
            seen.add(key)
            expanded += 1
            visited_node_ids.add(node_id)

            # required state must hold on arrival, before on_enter. Reported
            # but explored anyway so one run surfaces as much as possible.
            if node.required_state is not None:
                error = self.navigator.check_required_state(location, state)
                if error is not None:
                    report(Violation(
                        ViolationType.REQUIRED_STATE_VIOLATION, node_id, character_id,
                        f'required state not satisfied on entry: {"; ".join(error.diagnostic)}',
                        trace,
                    ))

            entered = self.navigator.enter_node(state, node)
            if not node.choices:
                continue

            evaluated = self.navigator.evaluate_choices(node, entered, character_id, include_hidden=True)
            declared = [e for e in evaluated if not e.choice.is_pattern_unlock]
            if not any(e.available for e in declared) and not node.is_terminal(self.terminal_tags):
                report(Violation(
                    ViolationType.SOFT_DEADLOCK, node_id, character_id,
                    f'node has {len(node.choices)} choice(s) but none are visible and enabled',
                    trace,
                    _snapshot(declared),
                ))

            if depth + 1 > self.max_steps:
                continue

            for e in evaluated:
                if not e.available:
                    continue
                target = self.registry.find_owning_graph(e.choice.node_id, entered)
                next_state, _ = self.navigator.take_choice(entered, e.choice, character_id, target[0] if target else None)
                queue.append((
                    e.choice.node_id,
                    next_state,
                    trace + (TraceStep(e.choice.node_id, e.choice.choice_id),),
                    depth + 1,
                ))

        if hit_max_states:
            self.logger.warning(f'simulation stopped after {expanded} states, results are partial')
        self.logger.info(f'simulated {expanded} states over {len(visited_node_ids)} nodes, {len(violations)} violations')

        return SimulationReport(violations, expanded, hit_max_states, visited_node_ids, occurrences)

def simulate_critical_path(
        initial_state:st.PlayerState,
        start_node_id:Optional[str]=None,
        registry:Optional[dialog.GraphRegistry]=None,
        max_steps:Optional[int]=None,
        max_states:Optional[int]=None) -> SimulationReport:
    """ simulates play from initial_state over registry (by default the
    configured dialogs) """
    if registry is None:
        registry = dialog.load_registry()
    return GraphSimulator(registry, max_steps=max_steps, max_states=max_states).simulate(initial_state, start_node_id)
