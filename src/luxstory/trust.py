""" Trust calculation

A trust change starts from a base delta authored on a choice, picks up a
resonance adjustment from the character's pattern affinities and a momentum
adjustment from recent same-direction changes, and is finally clamped into
trust bounds.

Deltas are integers. Scaled contributions are rounded half away from zero so
amplifying a delta never makes it smaller.
"""

import abc
import enum
import math
import logging
import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from luxstory import config, util, state as st

logger = logging.getLogger(__name__)

class AffinityLevel(enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    NEUTRAL = "neutral"
    FRICTION = "friction"

def affinity_multiplier(level:AffinityLevel) -> float:
    return getattr(config.Settings.trust.affinity, level.value)

@dataclasses.dataclass(frozen=True)
class AffinityProfile:
    """ How a character's trust responds to each pattern. """

    character_id:str
    primary:Optional[st.Pattern] = None
    secondary:Optional[st.Pattern] = None
    friction:Optional[st.Pattern] = None
    resonance:Mapping[st.Pattern, str] = dataclasses.field(default_factory=dict)

    def level(self, pattern:st.Pattern) -> AffinityLevel:
        if pattern == self.primary:
            return AffinityLevel.PRIMARY
        elif pattern == self.secondary:
            return AffinityLevel.SECONDARY
        elif pattern == self.friction:
            return AffinityLevel.FRICTION
        return AffinityLevel.NEUTRAL

def load_affinity_profile(character_id:str, data:Mapping[str, Any]) -> AffinityProfile:
    def opt(key:str) -> Optional[st.Pattern]:
        return st.parse_pattern(data[key]) if key in data else None

    profile = AffinityProfile(
        character_id,
        primary=opt("primary"),
        secondary=opt("secondary"),
        friction=opt("friction"),
        resonance={st.parse_pattern(k): v for k, v in data.get("resonance", {}).items()},
    )
    assigned = [p for p in (profile.primary, profile.secondary, profile.friction) if p is not None]
    if len(assigned) != len(set(assigned)):
        raise ValueError(f'{character_id} assigns the same pattern to more than one affinity level')
    return profile

def load_affinity_profiles(data:Optional[Mapping[str, Any]]=None) -> dict[str, AffinityProfile]:
    if data is None:
        data = config.Characters
    return {k: load_affinity_profile(k, v) for k, v in data.items()}

@dataclasses.dataclass(frozen=True)
class Resonance:
    contribution:int = 0
    triggered:bool = False
    description:Optional[str] = None

def calculate_resonance(
        base_delta:int,
        profile:Optional[AffinityProfile],
        choice_pattern:Optional[st.Pattern],
        player_patterns:Optional[st.Patterns]=None) -> Resonance:
    """ The affinity adjustment for a choice tagged with choice_pattern.

    Primary and secondary affinities amplify the delta, friction dampens it.
    The full multiplier applies when the choice matches the player's dominant
    pattern (who they are), a fraction of it otherwise (what they did). """

    if profile is None or choice_pattern is None or base_delta == 0:
        return Resonance()

    multiplier = affinity_multiplier(profile.level(choice_pattern))
    if multiplier == 1.0:
        return Resonance()

    weight = config.Settings.trust.affinity.CHOICE_WEIGHT
    if player_patterns is not None and st.dominant_pattern(player_patterns) == choice_pattern:
        weight = 1.0

    return Resonance(
        util.round_half_away(base_delta * (multiplier - 1.0) * weight),
        True,
        profile.resonance.get(choice_pattern),
    )

class MomentumStrategy(abc.ABC):
    """ Decides how much a run of same-direction trust changes reinforces
    the next change.

    Implementations must be monotonic: a longer same-direction streak never
    yields a smaller bonus. """

    @abc.abstractmethod
    def bonus(self, momentum:st.TrustMomentum, delta:int) -> float:
        """ fractional bonus (>= 0) to scale delta by, given prior momentum """
        ...

class NoMomentum(MomentumStrategy):
    def bonus(self, momentum:st.TrustMomentum, delta:int) -> float:
        return 0.

class StreakMomentum(MomentumStrategy):
    """ Linear bonus once a streak reaches a threshold, capped.

    The streak counts this change, so with threshold 2 the second consecutive
    positive change is the first to get a bonus. A change in the opposite
    direction starts over, so alternating changes never accumulate. """

    def __init__(self, threshold:Optional[int]=None, step:Optional[float]=None, max_bonus:Optional[float]=None) -> None:
        settings = config.Settings.trust.momentum
        self.threshold = threshold if threshold is not None else settings.STREAK_THRESHOLD
        self.step = step if step is not None else settings.STEP
        self.max_bonus = max_bonus if max_bonus is not None else settings.MAX_BONUS
        if self.step < 0 or self.max_bonus < 0:
            raise ValueError("momentum step and max bonus must be non-negative")

    def streak(self, momentum:st.TrustMomentum, delta:int) -> int:
        if delta > 0:
            return momentum.consecutive_positive + 1
        elif delta < 0:
            return momentum.consecutive_negative + 1
        return 0

    def bonus(self, momentum:st.TrustMomentum, delta:int) -> float:
        over = self.streak(momentum, delta) - self.threshold + 1
        return min(self.max_bonus, self.step * max(0, over))

def new_momentum(character_id:str) -> st.TrustMomentum:
    return st.TrustMomentum(character_id)

def reset_momentum(momentum:st.TrustMomentum) -> st.TrustMomentum:
    return new_momentum(momentum.character_id)

def update_momentum(momentum:st.TrustMomentum, delta:int, window:Optional[int]=None) -> st.TrustMomentum:
    if window is None:
        window = config.Settings.trust.HISTORY_WINDOW
    recent = (momentum.recent + (delta,))[-window:] if window > 0 else ()
    if delta > 0:
        return st.TrustMomentum(momentum.character_id, recent, momentum.consecutive_positive + 1, 0)
    elif delta < 0:
        return st.TrustMomentum(momentum.character_id, recent, 0, momentum.consecutive_negative + 1)
    return dataclasses.replace(momentum, recent=recent)

@dataclasses.dataclass(frozen=True)
class TrustOptions:
    character_id:Optional[str] = None
    choice_pattern:Optional[st.Pattern] = None
    player_patterns:Optional[st.Patterns] = None
    affinity:Optional[AffinityProfile] = None
    momentum:Optional[st.TrustMomentum] = None
    strategy:Optional[MomentumStrategy] = None
    skip_resonance:bool = False
    skip_momentum:bool = False
    min_trust:Optional[int] = None
    max_trust:Optional[int] = None
    history_window:Optional[int] = None

@dataclasses.dataclass(frozen=True)
class TrustBreakdown:
    base:int
    resonance:int
    momentum:int
    # the part of the adjusted delta that bounds swallowed
    clamped:int

    @property
    def adjusted(self) -> int:
        return self.base + self.resonance + self.momentum

@dataclasses.dataclass(frozen=True)
class TrustChangeResult:
    previous_trust:int
    new_trust:int
    actual_delta:int
    breakdown:TrustBreakdown
    momentum:st.TrustMomentum
    resonance_triggered:bool = False
    resonance_description:Optional[str] = None
    # (character id, applied delta) for related characters the change spread to
    ripples:tuple[tuple[str, int], ...] = ()

def _check_number(name:str, value:Any) -> None:
    if not util.is_finite_number(value):
        raise ValueError(f'{name} must be a finite number, got {value!r}')

def calculate_trust_change(current_trust:int, base_delta:int, options:Optional[TrustOptions]=None) -> TrustChangeResult:
    """
    Computes a new trust value from a base delta.

    Parameters
    ----------
    current_trust : int
        trust before the change, must lie within trust bounds
    base_delta : int
        the authored trust change
    options : TrustOptions
        affinity, momentum and bound settings. Resonance applies only when
        both an affinity profile and a choice pattern are given.

    Returns
    -------
    out : TrustChangeResult
        the new trust, the delta actually applied, a breakdown and the updated
        momentum which the caller must store back into player state
    """

    if options is None:
        options = TrustOptions()
    _check_number("current trust", current_trust)
    _check_number("trust delta", base_delta)

    lb = options.min_trust if options.min_trust is not None else config.Settings.trust.MIN_TRUST
    ub = options.max_trust if options.max_trust is not None else config.Settings.trust.MAX_TRUST
    if current_trust < lb or current_trust > ub:
        raise ValueError(f'current trust {current_trust} outside bounds [{lb}, {ub}]')

    base = util.round_half_away(base_delta)
    character_id = options.character_id or (options.momentum.character_id if options.momentum else "")
    momentum = options.momentum if options.momentum is not None else new_momentum(character_id)

    resonance = Resonance()
    if not options.skip_resonance:
        resonance = calculate_resonance(base, options.affinity, options.choice_pattern, options.player_patterns)
    delta = base + resonance.contribution

    momentum_contribution = 0
    if not options.skip_momentum:
        strategy = options.strategy if options.strategy is not None else StreakMomentum()
        momentum_contribution = util.round_half_away(delta * strategy.bonus(momentum, delta))
    delta += momentum_contribution

    new_trust = int(util.clamp(current_trust + delta, lb, ub))
    actual_delta = new_trust - int(current_trust)

    if not options.skip_momentum:
        momentum = update_momentum(momentum, delta, options.history_window)

    return TrustChangeResult(
        previous_trust=int(current_trust),
        new_trust=new_trust,
        actual_delta=actual_delta,
        breakdown=TrustBreakdown(base, resonance.contribution, momentum_contribution, delta - actual_delta),
        momentum=momentum,
        resonance_triggered=resonance.triggered,
        resonance_description=resonance.description,
    )

def apply_trust_change(
        state:st.PlayerState,
        character_id:str,
        base_delta:int,
        choice_pattern:Optional[st.Pattern]=None,
        affinity:Optional[AffinityProfile]=None,
        strategy:Optional[MomentumStrategy]=None,
        relationships:Sequence["TrustRelationship"]=()) -> tuple[st.PlayerState, TrustChangeResult]:
    """ runs a trust change for character_id through the full pipeline and
    stores the new trust and momentum in a new state

    With relationships, the applied change also ripples to related characters
    the player has already met. """

    cs = st.get_character(state, character_id)
    result = calculate_trust_change(cs.trust, base_delta, TrustOptions(
        character_id=character_id,
        choice_pattern=choice_pattern,
        player_patterns=state.patterns,
        affinity=affinity,
        momentum=state.momentum.get(character_id),
        strategy=strategy,
    ))
    logger.debug(f'{character_id} trust {result.previous_trust} -> {result.new_trust} ({result.breakdown})')

    state = st.with_character(state, dataclasses.replace(cs, trust=result.new_trust))
    state = st.with_momentum(state, result.momentum)

    if relationships and result.actual_delta != 0:
        state, ripples = apply_ripples(state, character_id, result.actual_delta, relationships)
        if ripples:
            result = dataclasses.replace(result, ripples=ripples)
    return state, result

def reset_character_momentum(state:st.PlayerState, character_id:str) -> st.PlayerState:
    """ forgets recent trust history for character_id, e.g. at a scene boundary """
    return st.without_momentum(state, character_id)

def trust_tier(trust:int) -> str:
    tiers = config.Settings.trust.tiers
    if trust >= tiers.bonded:
        return "bonded"
    elif trust >= tiers.trusted:
        return "trusted"
    elif trust >= tiers.friendly:
        return "friendly"
    return "guarded"

class TrustTrend(enum.Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"

def trust_trend(momentum:Optional[st.TrustMomentum], window:Optional[int]=None) -> TrustTrend:
    """ which way trust has been heading over the last few changes """
    if window is None:
        window = config.Settings.trust.TREND_WINDOW
    if momentum is None or len(momentum.recent) < 2 or window <= 0:
        return TrustTrend.STABLE

    total = sum(momentum.recent[-window:])
    threshold = config.Settings.trust.TREND_THRESHOLD
    if total > threshold:
        return TrustTrend.IMPROVING
    elif total < -threshold:
        return TrustTrend.DECLINING
    return TrustTrend.STABLE

@dataclasses.dataclass(frozen=True)
class TrustRelationship:
    """ An undirected link between two characters that trust carries over. """

    character_id:str
    other_id:str
    kind:str
    transfer:float

    def other(self, character_id:str) -> Optional[str]:
        if character_id == self.character_id:
            return self.other_id
        elif character_id == self.other_id:
            return self.character_id
        return None

def transfer_rate(kind:str) -> float:
    rates = config.Settings.trust.transfer
    if not isinstance(kind, str) or not hasattr(rates, kind):
        raise ValueError(f'unknown relationship kind {kind!r}')
    return getattr(rates, kind)

def load_relationships(data:Optional[Mapping[str, Any]]=None) -> list[TrustRelationship]:
    """ relationships declared under each character's relationships table

    Each pair may be declared once, from either side. """

    if data is None:
        data = config.Characters

    relationships = []
    seen:set[frozenset[str]] = set()
    for character_id, character_data in data.items():
        links = character_data.get("relationships", {})
        if not isinstance(links, Mapping):
            raise ValueError(f'relationships of {character_id} must be a table, got {links!r}')
        for other_id, kind in links.items():
            if other_id == character_id:
                raise ValueError(f'{character_id} cannot be related to themselves')
            pair = frozenset((character_id, other_id))
            if pair in seen:
                raise ValueError(f'relationship between {character_id} and {other_id} declared twice')
            seen.add(pair)
            relationships.append(TrustRelationship(character_id, other_id, kind, transfer_rate(kind)))
    return relationships

def related_characters(character_id:str, relationships:Sequence[TrustRelationship]) -> list[tuple[str, float]]:
    related = []
    for r in relationships:
        other = r.other(character_id)
        if other is not None:
            related.append((other, r.transfer))
    return related

def ripple_targets(character_id:str, delta:int, relationships:Sequence[TrustRelationship]) -> list[tuple[str, int]]:
    """ how a trust change with character_id spreads to the people related to
    them. Ripples are truncated toward zero, so small changes stay local. """
    factor = config.Settings.trust.RIPPLE_FACTOR
    ripples = []
    for other, rate in related_characters(character_id, relationships):
        ripple = int(delta * rate * factor)
        if ripple != 0:
            ripples.append((other, ripple))
    return ripples

def apply_ripples(state:st.PlayerState, character_id:str, delta:int, relationships:Sequence[TrustRelationship]) -> tuple[st.PlayerState, tuple[tuple[str, int], ...]]:
    lb = config.Settings.trust.MIN_TRUST
    ub = config.Settings.trust.MAX_TRUST
    applied = []
    for other, ripple in ripple_targets(character_id, delta, relationships):
        cs = state.character(other)
        # characters not met yet pick this up as inherited trust instead
        if cs is None:
            continue
        new_trust = int(util.clamp(cs.trust + ripple, lb, ub))
        if new_trust != cs.trust:
            state = st.with_character(state, dataclasses.replace(cs, trust=new_trust))
            applied.append((other, new_trust - cs.trust))
    if applied:
        logger.debug(f'trust change with {character_id} rippled to {applied}')
    return state, tuple(applied)

def inherited_trust(state:st.PlayerState, character_id:str, relationships:Sequence[TrustRelationship]) -> int:
    """ trust character_id starts with, carried over from related characters
    the player already knows """
    total = 0
    for other, rate in related_characters(character_id, relationships):
        cs = state.character(other)
        if cs is not None:
            total += math.floor(cs.trust * rate)
    return int(util.clamp(total, config.Settings.trust.MIN_TRUST, config.Settings.trust.MAX_INHERITED))

def meet_character(state:st.PlayerState, character_id:str, relationships:Sequence[TrustRelationship]) -> st.PlayerState:
    """ adds character_id to state on first meeting, with inherited trust """
    if state.character(character_id) is not None:
        return state
    inherited = inherited_trust(state, character_id, relationships)
    state = st.ensure_character(state, character_id)
    if inherited == 0:
        return state
    cs = st.get_character(state, character_id)
    trust = int(util.clamp(cs.trust + inherited, config.Settings.trust.MIN_TRUST, config.Settings.trust.MAX_TRUST))
    return st.with_character(state, dataclasses.replace(cs, trust=trust))
