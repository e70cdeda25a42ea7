""" Pattern unlocks

Characters open extra conversation branches once one of the player's patterns
fills past a threshold percentage. Each unlock can be taken once per
character, after that it stays hidden.
"""

import logging
import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

from luxstory import config, dialog, state as st

logger = logging.getLogger(__name__)

@dataclasses.dataclass(frozen=True)
class PatternUnlock:
    character_id:str
    pattern:st.Pattern
    # fill percentage, 0-100
    threshold:float
    node_id:str
    description:str = ""

@dataclasses.dataclass(frozen=True)
class UnlockProgress:
    unlock:PatternUnlock
    points_needed:float
    progress_percent:float

def load_unlocks(character_id:str, data:Iterable[Mapping[str, Any]]) -> list[PatternUnlock]:
    unlocks = []
    for i, u in enumerate(data):
        for key in ("pattern", "threshold", "node_id"):
            if key not in u:
                raise ValueError(f'unlock {i} for {character_id} missing {key}')
        threshold = u["threshold"]
        if not isinstance(threshold, (int, float)) or threshold < 0 or threshold > 100:
            raise ValueError(f'unlock {i} for {character_id} has bad threshold {threshold!r}')
        unlocks.append(PatternUnlock(
            character_id,
            st.parse_pattern(u["pattern"]),
            threshold,
            u["node_id"],
            u.get("description", ""),
        ))
    return unlocks

def load_unlock_tables(data:Optional[Mapping[str, Any]]=None) -> dict[str, list[PatternUnlock]]:
    """ unlock definitions for every character that has any """
    if data is None:
        data = config.Characters
    tables = {k: load_unlocks(k, v["unlocks"]) for k, v in data.items() if "unlocks" in v}
    logger.debug(f'loaded {sum(len(v) for v in tables.values())} pattern unlocks for {len(tables)} characters')
    return tables

def fill_percent(value:float, max_value:Optional[float]=None) -> float:
    if max_value is None:
        max_value = config.Settings.patterns.MAX_PATTERN_VALUE
    if max_value <= 0:
        raise ValueError(f'max pattern value must be positive, got {max_value}')
    return min(100., max(0., value / max_value * 100))

def fill_tier(percent:float) -> str:
    if percent >= 100:
        return "mastered"
    elif percent >= 75:
        return "flourishing"
    elif percent >= 50:
        return "developing"
    elif percent >= 25:
        return "emerging"
    return "nascent"

def _ordered(definitions:Sequence[PatternUnlock]) -> list[PatternUnlock]:
    # sorted is stable, so equal thresholds keep declaration order
    return sorted(definitions, key=lambda u: u.threshold)

def resolve_unlocks(patterns:st.Patterns, max_value:Optional[float], definitions:Sequence[PatternUnlock], visited:Iterable[str]=()) -> list[PatternUnlock]:
    """
    Finds the unlocks the player's patterns currently open up.

    Parameters
    ----------
    patterns : Patterns
        the player's pattern counters
    max_value : float
        the pattern value that counts as 100% full, None for the configured
        default
    definitions : sequence of PatternUnlock
        one character's unlock table
    visited : iterable of str
        unlock target node ids the character has already visited

    Returns
    -------
    out : list of PatternUnlock
        satisfied, not yet visited unlocks ordered by threshold
    """

    visited = frozenset(visited)
    return [
        u for u in _ordered(definitions)
        if u.node_id not in visited and fill_percent(patterns.get(u.pattern), max_value) >= u.threshold
    ]

def unlock_choice(unlock:PatternUnlock) -> dialog.DialogChoice:
    return dialog.DialogChoice(
        f'unlock_{unlock.node_id}',
        unlock.description or unlock.node_id,
        unlock.node_id,
        pattern=unlock.pattern,
        is_pattern_unlock=True,
    )

def unlock_choices(state:st.PlayerState, character_id:str, definitions:Sequence[PatternUnlock], max_value:Optional[float]=None) -> list[dialog.DialogChoice]:
    """ synthetic, always available choices for the unlocks open with
    character_id right now """
    cs = state.character(character_id)
    visited = cs.visited_unlocks if cs is not None else frozenset()
    return [unlock_choice(u) for u in resolve_unlocks(state.patterns, max_value, definitions, visited)]

def nearest_unlock(patterns:st.Patterns, max_value:Optional[float], definitions:Sequence[PatternUnlock], visited:Iterable[str]=()) -> Optional[UnlockProgress]:
    """ the unvisited, not yet satisfied unlock needing the fewest points """
    if max_value is None:
        max_value = config.Settings.patterns.MAX_PATTERN_VALUE
    visited = frozenset(visited)

    best:Optional[UnlockProgress] = None
    for u in _ordered(definitions):
        if u.node_id in visited:
            continue
        value = patterns.get(u.pattern)
        percent = fill_percent(value, max_value)
        if percent >= u.threshold:
            continue
        needed = u.threshold / 100 * max_value - value
        if best is None or needed < best.points_needed:
            best = UnlockProgress(u, needed, percent / u.threshold * 100)
    return best
