""" Test cases for the trust calculation pipeline """

import math

import pytest

from luxstory import trust, state as st
from . import make_state, set_trust

def plain(**kwargs) -> trust.TrustOptions:
    return trust.TrustOptions(skip_resonance=True, skip_momentum=True, **kwargs)

def test_clamp_high():
    result = trust.calculate_trust_change(9, 5, plain())
    assert result.new_trust == 10
    assert result.actual_delta == 1
    assert result.breakdown.clamped == 4
    assert result.breakdown.base == 5

def test_clamp_low():
    result = trust.calculate_trust_change(2, -5, plain())
    assert result.new_trust == 0
    assert result.actual_delta == -2
    assert result.breakdown.clamped == -3

def test_bounds_and_actual_delta_always_hold():
    strategy = trust.StreakMomentum(threshold=1, step=0.5, max_bonus=1.0)
    profile = trust.AffinityProfile("maya", primary=st.Pattern.BUILDING, friction=st.Pattern.HELPING)
    for current in range(0, 11):
        for delta in range(-12, 13):
            for pattern in (None, st.Pattern.BUILDING, st.Pattern.HELPING):
                momentum = st.TrustMomentum("maya", (), 3 if delta > 0 else 0, 3 if delta < 0 else 0)
                result = trust.calculate_trust_change(current, delta, trust.TrustOptions(
                    character_id="maya",
                    choice_pattern=pattern,
                    affinity=profile,
                    momentum=momentum,
                    strategy=strategy,
                ))
                assert 0 <= result.new_trust <= 10
                assert result.actual_delta == result.new_trust - current
                assert result.breakdown.adjusted - result.breakdown.clamped == result.actual_delta

def test_invalid_input():
    with pytest.raises(ValueError):
        trust.calculate_trust_change(math.nan, 1)
    with pytest.raises(ValueError):
        trust.calculate_trust_change(5, math.inf)
    with pytest.raises(ValueError):
        trust.calculate_trust_change(5, "2") # type: ignore
    with pytest.raises(ValueError):
        trust.calculate_trust_change(11, 1)

def test_resonance_primary_and_friction():
    profile = trust.AffinityProfile("maya", primary=st.Pattern.BUILDING, secondary=st.Pattern.ANALYTICAL, friction=st.Pattern.HELPING)

    # a single choice counts half: 2 * 0.5 * 0.5 = 0.5, rounds away to 1
    result = trust.calculate_trust_change(3, 2, trust.TrustOptions(choice_pattern=st.Pattern.BUILDING, affinity=profile, skip_momentum=True))
    assert result.breakdown.resonance == 1
    assert result.new_trust == 6
    assert result.resonance_triggered

    # friction dampens
    result = trust.calculate_trust_change(3, 4, trust.TrustOptions(choice_pattern=st.Pattern.HELPING, affinity=profile, skip_momentum=True))
    assert result.breakdown.resonance == -1
    assert result.new_trust == 6

    # neutral patterns do nothing
    result = trust.calculate_trust_change(3, 4, trust.TrustOptions(choice_pattern=st.Pattern.PATIENCE, affinity=profile, skip_momentum=True))
    assert result.breakdown.resonance == 0
    assert not result.resonance_triggered

def test_resonance_dominant_pattern_full_weight():
    profile = trust.AffinityProfile("maya", primary=st.Pattern.BUILDING, resonance={st.Pattern.BUILDING: "kindred"})
    patterns = st.Patterns(building=6)
    result = trust.calculate_trust_change(0, 2, trust.TrustOptions(
        choice_pattern=st.Pattern.BUILDING, player_patterns=patterns, affinity=profile, skip_momentum=True,
    ))
    # 2 * 0.5 * 1.0
    assert result.breakdown.resonance == 1
    assert result.resonance_description == "kindred"

    result = trust.calculate_trust_change(0, 4, trust.TrustOptions(
        choice_pattern=st.Pattern.BUILDING, player_patterns=patterns, affinity=profile, skip_momentum=True,
    ))
    assert result.breakdown.resonance == 2

def test_resonance_requires_pattern_and_profile():
    profile = trust.AffinityProfile("maya", primary=st.Pattern.BUILDING)
    assert trust.calculate_trust_change(0, 4, trust.TrustOptions(affinity=profile, skip_momentum=True)).breakdown.resonance == 0
    assert trust.calculate_trust_change(0, 4, trust.TrustOptions(choice_pattern=st.Pattern.BUILDING, skip_momentum=True)).breakdown.resonance == 0
    assert trust.calculate_trust_change(0, 4, trust.TrustOptions(
        choice_pattern=st.Pattern.BUILDING, affinity=profile, skip_resonance=True, skip_momentum=True,
    )).breakdown.resonance == 0

def test_momentum_streak():
    strategy = trust.StreakMomentum(threshold=2, step=0.25, max_bonus=0.5)
    momentum = trust.new_momentum("samuel")

    # first positive change has no streak yet
    result = trust.calculate_trust_change(0, 2, trust.TrustOptions(momentum=momentum, strategy=strategy))
    assert result.breakdown.momentum == 0
    assert result.momentum.consecutive_positive == 1
    assert result.momentum.recent == (2,)

    # second in a row: 2 * 0.25 = 0.5 rounds to 1
    result = trust.calculate_trust_change(result.new_trust, 2, trust.TrustOptions(momentum=result.momentum, strategy=strategy))
    assert result.breakdown.momentum == 1
    assert result.momentum.consecutive_positive == 2
    assert result.momentum.recent == (2, 3)

    # a reversal starts over
    result = trust.calculate_trust_change(result.new_trust, -2, trust.TrustOptions(momentum=result.momentum, strategy=strategy))
    assert result.breakdown.momentum == 0
    assert result.momentum.consecutive_positive == 0
    assert result.momentum.consecutive_negative == 1

def test_momentum_alternating_never_accumulates():
    strategy = trust.StreakMomentum()
    momentum = trust.new_momentum("samuel")
    current = 5
    for delta in (1, -1) * 6:
        result = trust.calculate_trust_change(current, delta, trust.TrustOptions(momentum=momentum, strategy=strategy))
        assert result.breakdown.momentum == 0
        momentum = result.momentum
        current = result.new_trust

def test_momentum_monotonic():
    strategy = trust.StreakMomentum()
    for delta in (1, 2, 3, -1, -3):
        isolated = trust.calculate_trust_change(5, delta, trust.TrustOptions(strategy=strategy, min_trust=-100, max_trust=100))
        previous = abs(isolated.breakdown.adjusted)
        for streak in range(1, 10):
            momentum = st.TrustMomentum("x", (), streak if delta > 0 else 0, streak if delta < 0 else 0)
            result = trust.calculate_trust_change(5, delta, trust.TrustOptions(momentum=momentum, strategy=strategy, min_trust=-100, max_trust=100))
            assert abs(result.breakdown.adjusted) >= previous
            previous = abs(result.breakdown.adjusted)

def test_momentum_window():
    momentum = trust.new_momentum("samuel")
    for delta in range(1, 9):
        momentum = trust.update_momentum(momentum, delta, window=5)
    assert momentum.recent == (4, 5, 6, 7, 8)
    assert momentum.consecutive_positive == 8
    assert trust.reset_momentum(momentum) == st.TrustMomentum("samuel")

    # zero changes don't break a streak
    assert trust.update_momentum(momentum, 0, window=5).consecutive_positive == 8

def test_custom_strategy():
    class Flat(trust.MomentumStrategy):
        def bonus(self, momentum, delta):
            return 1.0

    result = trust.calculate_trust_change(0, 2, trust.TrustOptions(strategy=Flat()))
    assert result.breakdown.momentum == 2
    assert result.new_trust == 4

    result = trust.calculate_trust_change(0, 2, trust.TrustOptions(strategy=trust.NoMomentum()))
    assert result.breakdown.momentum == 0

def test_apply_trust_change_stores_momentum():
    state = make_state()
    profiles = trust.load_affinity_profiles()
    state, first = trust.apply_trust_change(state, "samuel", 1, st.Pattern.EXPLORING, profiles["samuel"])
    assert state.characters["samuel"].trust == 1
    assert state.momentum["samuel"].consecutive_positive == 1

    state, second = trust.apply_trust_change(state, "samuel", 2, None, profiles["samuel"])
    assert second.breakdown.momentum == 1
    assert state.characters["samuel"].trust == 4

    state = trust.reset_character_momentum(state, "samuel")
    assert "samuel" not in state.momentum

def test_apply_trust_change_unknown_character():
    state = make_state(characters=())
    state, result = trust.apply_trust_change(state, "devon", 3)
    assert result.previous_trust == 0
    assert state.characters["devon"].trust == 3

def test_load_affinity_profiles():
    profiles = trust.load_affinity_profiles()
    maya = profiles["maya"]
    assert maya.level(st.Pattern.BUILDING) == trust.AffinityLevel.PRIMARY
    assert maya.level(st.Pattern.ANALYTICAL) == trust.AffinityLevel.SECONDARY
    assert maya.level(st.Pattern.HELPING) == trust.AffinityLevel.FRICTION
    assert maya.level(st.Pattern.PATIENCE) == trust.AffinityLevel.NEUTRAL
    assert st.Pattern.BUILDING in maya.resonance

    with pytest.raises(ValueError):
        trust.load_affinity_profile("bad", {"primary": "helping", "friction": "helping"})

def test_trust_tier():
    assert trust.trust_tier(0) == "guarded"
    assert trust.trust_tier(4) == "friendly"
    assert trust.trust_tier(6) == "trusted"
    assert trust.trust_tier(10) == "bonded"

def test_trust_trend():
    assert trust.trust_trend(None) == trust.TrustTrend.STABLE
    assert trust.trust_trend(st.TrustMomentum("samuel", (3,))) == trust.TrustTrend.STABLE
    assert trust.trust_trend(st.TrustMomentum("samuel", (1, 1))) == trust.TrustTrend.IMPROVING
    assert trust.trust_trend(st.TrustMomentum("samuel", (1, -1, 1))) == trust.TrustTrend.STABLE
    assert trust.trust_trend(st.TrustMomentum("samuel", (-2, 0))) == trust.TrustTrend.DECLINING
    # only the most recent changes count
    assert trust.trust_trend(st.TrustMomentum("samuel", (5, -1, -1)), window=2) == trust.TrustTrend.DECLINING

def test_trust_trend_follows_changes():
    state = make_state()
    for _ in range(3):
        state, _ = trust.apply_trust_change(state, "samuel", -1)
    assert trust.trust_trend(state.momentum["samuel"]) == trust.TrustTrend.DECLINING

def test_load_relationships():
    relationships = trust.load_relationships()
    assert trust.related_characters("maya", relationships) == [("samuel", 0.5), ("devon", 0.1)]
    assert trust.related_characters("samuel", relationships) == [("maya", 0.5), ("devon", 0.1)]
    assert trust.related_characters("nobody", relationships) == []

    with pytest.raises(ValueError):
        trust.load_relationships({"a": {"relationships": {"b": "friend"}}, "b": {"relationships": {"a": "friend"}}})
    with pytest.raises(ValueError):
        trust.load_relationships({"a": {"relationships": {"b": "nemesis"}}})
    with pytest.raises(ValueError):
        trust.load_relationships({"a": {"relationships": {"a": "friend"}}})
    with pytest.raises(ValueError):
        trust.load_relationships({"a": {"relationships": ["b"]}})

def test_ripple_targets():
    relationships = trust.load_relationships()
    assert trust.ripple_targets("samuel", 4, relationships) == [("maya", 1)]
    assert trust.ripple_targets("samuel", -4, relationships) == [("maya", -1)]
    assert trust.ripple_targets("samuel", 1, relationships) == []

    rivals = [trust.TrustRelationship("kai", "alex", "rival", -0.25)]
    assert trust.ripple_targets("alex", 8, rivals) == [("kai", -1)]

def test_apply_trust_change_ripples():
    relationships = trust.load_relationships()
    state = set_trust(make_state(), "maya", 5)

    rippled, result = trust.apply_trust_change(state, "samuel", 4, relationships=relationships)
    assert rippled.characters["samuel"].trust == 4
    assert rippled.characters["maya"].trust == 6
    assert result.ripples == (("maya", 1),)
    # devon hasn't been met, nothing to ripple to
    assert "devon" not in rippled.characters
    # ripples don't count as interactions with maya
    assert "maya" not in rippled.momentum

    plain_state, result = trust.apply_trust_change(state, "samuel", 4)
    assert plain_state.characters["maya"].trust == 5
    assert result.ripples == ()

    # nothing left to ripple at the bound
    state = set_trust(make_state(), "maya", 10)
    state, result = trust.apply_trust_change(state, "samuel", 4, relationships=relationships)
    assert state.characters["maya"].trust == 10
    assert result.ripples == ()

def test_meet_character_inherits_trust():
    relationships = trust.load_relationships()
    state = set_trust(make_state(characters=("samuel",)), "samuel", 8)

    met = trust.meet_character(state, "maya", relationships)
    # half of samuel's trust, capped
    assert met.characters["maya"].trust == 3
    assert trust.inherited_trust(state, "devon", relationships) == 0
    assert trust.meet_character(met, "maya", relationships) is met

    rivals = [trust.TrustRelationship("kai", "alex", "rival", -0.25)]
    state = set_trust(make_state(characters=("kai",)), "kai", 8)
    assert trust.meet_character(state, "alex", rivals).characters["alex"].trust == 0
