""" Identity thoughts

Each pattern has an identity thought ("identity-<pattern>"). Choosing a
pattern develops its thought; once progress crosses the offering threshold the
player is asked whether this is who they are. Internalizing grants a fixed
bonus to future gains of that pattern. Discarding costs nothing.

dormant -> developing -> offered -> internalized | discarded
"""

import logging
import dataclasses
from typing import Optional

from luxstory import config, state as st

logger = logging.getLogger(__name__)

IDENTITY_PREFIX = "identity-"

def identity_thought_id(pattern:st.Pattern) -> str:
    return f'{IDENTITY_PREFIX}{pattern.value}'

def is_identity_thought(thought_id:str) -> bool:
    return thought_id.startswith(IDENTITY_PREFIX)

def pattern_for_thought(thought_id:str) -> Optional[st.Pattern]:
    if not is_identity_thought(thought_id):
        return None
    try:
        return st.Pattern(thought_id[len(IDENTITY_PREFIX):])
    except ValueError:
        return None

def _thought(state:st.PlayerState, pattern:st.Pattern) -> st.IdentityThought:
    t = state.thought(pattern)
    return t if t is not None else st.IdentityThought(pattern)

def record_pattern_choice(state:st.PlayerState, pattern:st.Pattern, amount:float=1, threshold:Optional[float]=None) -> st.PlayerState:
    """ develops the identity thought for pattern after a choice """
    if threshold is None:
        threshold = config.Settings.identity.OFFERING_THRESHOLD

    thought = _thought(state, pattern)
    if thought.status not in (st.ThoughtStatus.DORMANT, st.ThoughtStatus.DEVELOPING):
        return state

    progress = thought.progress + amount
    status = st.ThoughtStatus.OFFERED if progress >= threshold else st.ThoughtStatus.DEVELOPING
    if status == st.ThoughtStatus.OFFERED:
        logger.info(f'offering {thought.thought_id} to {state.player_id}')
    return st.with_thought(state, dataclasses.replace(thought, status=status, progress=progress))

def _resolve_offer(state:st.PlayerState, pattern:st.Pattern, status:st.ThoughtStatus) -> st.PlayerState:
    thought = _thought(state, pattern)
    if thought.status != st.ThoughtStatus.OFFERED:
        raise ValueError(f'{thought.thought_id} is {thought.status.value}, only offered thoughts can become {status.value}')
    return st.with_thought(state, dataclasses.replace(thought, status=status))

def internalize(state:st.PlayerState, pattern:st.Pattern) -> st.PlayerState:
    return _resolve_offer(state, pattern, st.ThoughtStatus.INTERNALIZED)

def discard(state:st.PlayerState, pattern:st.Pattern) -> st.PlayerState:
    return _resolve_offer(state, pattern, st.ThoughtStatus.DISCARDED)

def has_internalized(state:st.PlayerState, pattern:st.Pattern) -> bool:
    t = state.thought(pattern)
    return t is not None and t.status == st.ThoughtStatus.INTERNALIZED

def calculate_pattern_gain(base_gain:float, pattern:st.Pattern, state:st.PlayerState, bonus:Optional[float]=None) -> float:
    """ base_gain, boosted by the internalization bonus if (and only if) the
    identity for exactly this pattern is internalized """
    if not has_internalized(state, pattern):
        return base_gain
    if bonus is None:
        bonus = config.Settings.identity.INTERNALIZE_BONUS
    return base_gain * (1 + bonus)

def apply_pattern_gain(state:st.PlayerState, pattern:st.Pattern, base_gain:Optional[float]=None) -> tuple[st.PlayerState, float]:
    """ adds a (possibly boosted) gain to pattern and develops its thought """
    if base_gain is None:
        base_gain = config.Settings.patterns.BASE_GAIN
    gain = calculate_pattern_gain(base_gain, pattern, state)
    state = st.with_patterns(state, state.patterns.add(pattern, gain))
    state = record_pattern_choice(state, pattern)
    return state, gain

def internalized_patterns(state:st.PlayerState) -> list[st.Pattern]:
    return [t.pattern for t in state.thoughts if t.status == st.ThoughtStatus.INTERNALIZED]

def pending_offers(state:st.PlayerState) -> list[st.IdentityThought]:
    return [t for t in state.thoughts if t.status == st.ThoughtStatus.OFFERED]

@dataclasses.dataclass(frozen=True)
class IdentitySummary:
    internalized:tuple[st.Pattern, ...]
    pending:tuple[st.IdentityThought, ...]
    bonuses:dict[st.Pattern, float]

def identity_summary(state:st.PlayerState) -> IdentitySummary:
    internalized = internalized_patterns(state)
    bonus = config.Settings.identity.INTERNALIZE_BONUS
    return IdentitySummary(
        tuple(internalized),
        tuple(pending_offers(state)),
        {p: bonus for p in internalized},
    )
