""" Player state model

Everything the narrative knows about a player lives in a PlayerState. States
are immutable values: every change produces a new state, so one state can be
the root of many simulated branches without them interfering.
"""

import enum
import types
import logging
import dataclasses
from collections.abc import Mapping, Iterable
from typing import Any, Optional, Union

from luxstory import config, util

logger = logging.getLogger(__name__)

class Pattern(enum.Enum):
    ANALYTICAL = "analytical"
    PATIENCE = "patience"
    EXPLORING = "exploring"
    HELPING = "helping"
    BUILDING = "building"

# canonical ordering, used for tie breaks and state keys
PATTERNS:tuple[Pattern, ...] = tuple(Pattern)

class RelationshipStatus(enum.Enum):
    STRANGER = "stranger"
    ACQUAINTANCE = "acquaintance"
    CONFIDANT = "confidant"

class ThoughtStatus(enum.Enum):
    DORMANT = "dormant"
    DEVELOPING = "developing"
    OFFERED = "offered"
    INTERNALIZED = "internalized"
    DISCARDED = "discarded"

def parse_pattern(value:Union[str, Pattern]) -> Pattern:
    if isinstance(value, Pattern):
        return value
    try:
        return Pattern(value)
    except ValueError:
        raise ValueError(f'unknown pattern "{value}", expected one of {[p.value for p in PATTERNS]}') from None

def parse_relationship(value:Union[str, RelationshipStatus]) -> RelationshipStatus:
    if isinstance(value, RelationshipStatus):
        return value
    try:
        return RelationshipStatus(value)
    except ValueError:
        raise ValueError(f'unknown relationship status "{value}"') from None

def _frozen_mapping(d:Mapping) -> Mapping:
    return types.MappingProxyType(dict(d))

@dataclasses.dataclass(frozen=True)
class Patterns:
    """ The five behavioral pattern counters. Never negative. """

    analytical:float = 0
    patience:float = 0
    exploring:float = 0
    helping:float = 0
    building:float = 0

    def __post_init__(self) -> None:
        for p in PATTERNS:
            if getattr(self, p.value) < 0:
                raise ValueError(f'pattern {p.value} cannot be negative')

    def get(self, pattern:Pattern) -> float:
        return getattr(self, pattern.value)

    def add(self, pattern:Pattern, amount:float) -> "Patterns":
        return dataclasses.replace(self, **{pattern.value: max(0, self.get(pattern) + amount)})

    def vector(self) -> tuple[float, ...]:
        return tuple(self.get(p) for p in PATTERNS)

    def as_dict(self) -> dict[str, float]:
        return {p.value: self.get(p) for p in PATTERNS}

@dataclasses.dataclass(frozen=True)
class CharacterState:
    character_id:str
    trust:int = 0
    relationship:RelationshipStatus = RelationshipStatus.STRANGER
    knowledge_flags:frozenset[str] = frozenset()
    # pattern unlock target node ids already visited with this character
    visited_unlocks:frozenset[str] = frozenset()
    # node ids visited with this character, oldest first
    history:tuple[str, ...] = ()

@dataclasses.dataclass(frozen=True)
class IdentityThought:
    pattern:Pattern
    status:ThoughtStatus = ThoughtStatus.DORMANT
    progress:float = 0

    @property
    def thought_id(self) -> str:
        return f'identity-{self.pattern.value}'

@dataclasses.dataclass(frozen=True)
class TrustMomentum:
    character_id:str
    # bounded window of recent adjusted deltas, oldest first
    recent:tuple[int, ...] = ()
    consecutive_positive:int = 0
    consecutive_negative:int = 0

@dataclasses.dataclass(frozen=True)
class PlayerState:
    player_id:str
    current_node_id:str
    current_character_id:Optional[str] = None
    patterns:Patterns = Patterns()
    characters:Mapping[str, CharacterState] = dataclasses.field(default_factory=dict)
    global_flags:frozenset[str] = frozenset()
    thoughts:tuple[IdentityThought, ...] = ()
    momentum:Mapping[str, TrustMomentum] = dataclasses.field(default_factory=dict)
    # skill name -> level in [0, 1], maintained by whatever tracks skills
    skill_levels:Mapping[str, float] = dataclasses.field(default_factory=dict)
    # bumped on every applied change
    version:int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "characters", _frozen_mapping(self.characters))
        object.__setattr__(self, "momentum", _frozen_mapping(self.momentum))
        object.__setattr__(self, "skill_levels", _frozen_mapping(self.skill_levels))
        object.__setattr__(self, "global_flags", frozenset(self.global_flags))
        object.__setattr__(self, "thoughts", tuple(self.thoughts))

    def character(self, character_id:Optional[str]) -> Optional[CharacterState]:
        if character_id is None:
            return None
        return self.characters.get(character_id)

    def thought(self, pattern:Pattern) -> Optional[IdentityThought]:
        for t in self.thoughts:
            if t.pattern == pattern:
                return t
        return None

@dataclasses.dataclass(frozen=True)
class StateChange:
    """ A declarative description of deltas to apply to a PlayerState. """

    character_id:Optional[str] = None
    trust_change:Optional[int] = None
    set_relationship:Optional[RelationshipStatus] = None
    add_knowledge_flags:frozenset[str] = frozenset()
    remove_knowledge_flags:frozenset[str] = frozenset()
    add_global_flags:frozenset[str] = frozenset()
    remove_global_flags:frozenset[str] = frozenset()
    pattern_changes:Mapping[Pattern, float] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern_changes", _frozen_mapping(self.pattern_changes))
        for name in ("add_knowledge_flags", "remove_knowledge_flags", "add_global_flags", "remove_global_flags"):
            object.__setattr__(self, name, frozenset(getattr(self, name)))

    def touches_character(self) -> bool:
        return (
            self.trust_change is not None
            or self.set_relationship is not None
            or bool(self.add_knowledge_flags)
            or bool(self.remove_knowledge_flags)
        )

STATE_CHANGE_KEYS = frozenset((
    "character_id", "trust_change", "set_relationship",
    "add_knowledge_flags", "remove_knowledge_flags",
    "add_global_flags", "remove_global_flags", "pattern_changes",
))

def load_state_change(data:Mapping[str, Any], default_character_id:Optional[str]=None) -> StateChange:
    """ Builds a StateChange from authored data.

    Character specific changes without an explicit character_id apply to
    default_character_id (usually the character owning the graph). """

    if not isinstance(data, Mapping):
        raise ValueError(f'state change must be a table, got {data!r}')
    unknown = set(data.keys()) - STATE_CHANGE_KEYS
    if unknown:
        raise ValueError(f'unknown state change keys {sorted(unknown)}')

    trust_change = data.get("trust_change")
    if trust_change is not None and not util.is_finite_number(trust_change):
        raise ValueError(f'trust_change must be a number, got {trust_change!r}')
    if trust_change is not None and trust_change != int(trust_change):
        raise ValueError(f'trust_change must be a whole number, got {trust_change!r}')

    set_relationship = None
    if "set_relationship" in data:
        set_relationship = parse_relationship(data["set_relationship"])

    pattern_changes = {}
    for k, v in data.get("pattern_changes", {}).items():
        if not util.is_finite_number(v):
            raise ValueError(f'pattern change for {k} must be a number, got {v!r}')
        pattern_changes[parse_pattern(k)] = v

    return StateChange(
        character_id=data.get("character_id", default_character_id),
        trust_change=int(trust_change) if trust_change is not None else None,
        set_relationship=set_relationship,
        add_knowledge_flags=frozenset(data.get("add_knowledge_flags", [])),
        remove_knowledge_flags=frozenset(data.get("remove_knowledge_flags", [])),
        add_global_flags=frozenset(data.get("add_global_flags", [])),
        remove_global_flags=frozenset(data.get("remove_global_flags", [])),
        pattern_changes=pattern_changes,
    )

def new_character_state(character_id:str) -> CharacterState:
    return CharacterState(character_id, trust=config.Settings.trust.DEFAULT_TRUST)

def new_player_state(player_id:str, character_ids:Iterable[str]=(), start_node_id:str="start", start_character_id:Optional[str]=None) -> PlayerState:
    return PlayerState(
        player_id=player_id,
        current_node_id=start_node_id,
        current_character_id=start_character_id,
        characters={c: new_character_state(c) for c in character_ids},
        thoughts=tuple(IdentityThought(p) for p in PATTERNS),
    )

def get_character(state:PlayerState, character_id:str) -> CharacterState:
    """ the character's state, or a default one if we haven't met them """
    cs = state.characters.get(character_id)
    if cs is None:
        return new_character_state(character_id)
    return cs

def _bump(state:PlayerState, **changes:Any) -> PlayerState:
    return dataclasses.replace(state, version=state.version + 1, **changes)

def with_character(state:PlayerState, character:CharacterState) -> PlayerState:
    characters = dict(state.characters)
    characters[character.character_id] = character
    return _bump(state, characters=characters)

def ensure_character(state:PlayerState, character_id:str) -> PlayerState:
    if character_id in state.characters:
        return state
    return with_character(state, new_character_state(character_id))

def with_patterns(state:PlayerState, patterns:Patterns) -> PlayerState:
    return _bump(state, patterns=patterns)

def with_momentum(state:PlayerState, momentum:TrustMomentum) -> PlayerState:
    m = dict(state.momentum)
    m[momentum.character_id] = momentum
    return _bump(state, momentum=m)

def without_momentum(state:PlayerState, character_id:str) -> PlayerState:
    if character_id not in state.momentum:
        return state
    m = dict(state.momentum)
    del m[character_id]
    return _bump(state, momentum=m)

def with_thought(state:PlayerState, thought:IdentityThought) -> PlayerState:
    thoughts = [t for t in state.thoughts if t.pattern != thought.pattern]
    thoughts.append(thought)
    thoughts.sort(key=lambda t: PATTERNS.index(t.pattern))
    return _bump(state, thoughts=tuple(thoughts))

def with_skill_levels(state:PlayerState, skill_levels:Mapping[str, float]) -> PlayerState:
    return _bump(state, skill_levels=skill_levels)

def move_to(state:PlayerState, node_id:str, character_id:Optional[str]=None) -> PlayerState:
    return _bump(
        state,
        current_node_id=node_id,
        current_character_id=character_id if character_id is not None else state.current_character_id,
    )

def record_history(state:PlayerState, character_id:str, node_id:str) -> PlayerState:
    cs = get_character(state, character_id)
    return with_character(state, dataclasses.replace(cs, history=cs.history + (node_id,)))

def mark_unlock_visited(state:PlayerState, character_id:str, node_id:str) -> PlayerState:
    cs = get_character(state, character_id)
    if node_id in cs.visited_unlocks:
        return state
    return with_character(state, dataclasses.replace(cs, visited_unlocks=cs.visited_unlocks | {node_id}))

def clamp_trust(trust:float) -> int:
    return int(util.clamp(trust, config.Settings.trust.MIN_TRUST, config.Settings.trust.MAX_TRUST))

def apply_state_change(state:PlayerState, change:StateChange) -> PlayerState:
    """ Applies change to state, returning a new state.

    Trust is clamped to bounds, pattern counters never go below zero and
    relationship status only changes when the change sets it explicitly. A
    change about a character we haven't met yet creates that character. """

    global_flags = (state.global_flags | change.add_global_flags) - change.remove_global_flags

    patterns = state.patterns
    for pattern, amount in change.pattern_changes.items():
        patterns = patterns.add(pattern, amount)

    characters = dict(state.characters)
    if change.character_id is not None and change.touches_character():
        cs = get_character(state, change.character_id)
        trust = cs.trust
        if change.trust_change is not None:
            trust = clamp_trust(cs.trust + change.trust_change)
        characters[change.character_id] = dataclasses.replace(
            cs,
            trust=trust,
            relationship=change.set_relationship if change.set_relationship is not None else cs.relationship,
            knowledge_flags=(cs.knowledge_flags | change.add_knowledge_flags) - change.remove_knowledge_flags,
        )
    elif change.character_id is None and change.touches_character():
        logger.warning(f'state change has character changes but no character: {change}')

    return _bump(state, global_flags=global_flags, patterns=patterns, characters=characters)

def apply_state_changes(state:PlayerState, changes:Iterable[StateChange]) -> PlayerState:
    for change in changes:
        state = apply_state_change(state, change)
    return state

def dominant_pattern(patterns:Patterns, min_value:Optional[float]=None) -> Optional[Pattern]:
    """ the highest pattern counter, ties go to the earlier pattern

    None if the highest counter is below min_value. """
    if min_value is None:
        min_value = config.Settings.trust.affinity.DOMINANT_MIN
    best = max(PATTERNS, key=lambda p: (patterns.get(p), -PATTERNS.index(p)))
    if patterns.get(best) < min_value:
        return None
    return best

def state_to_dict(state:PlayerState) -> dict[str, Any]:
    """ a plain snapshot of state suitable for json or toml """
    return {
        "player_id": state.player_id,
        "current_node_id": state.current_node_id,
        "current_character_id": state.current_character_id,
        "version": state.version,
        "patterns": state.patterns.as_dict(),
        "global_flags": sorted(state.global_flags),
        "characters": [
            {
                "character_id": cs.character_id,
                "trust": cs.trust,
                "relationship": cs.relationship.value,
                "knowledge_flags": sorted(cs.knowledge_flags),
                "visited_unlocks": sorted(cs.visited_unlocks),
                "history": list(cs.history),
            } for cs in state.characters.values()
        ],
        "thoughts": [
            {"pattern": t.pattern.value, "status": t.status.value, "progress": t.progress}
            for t in state.thoughts
        ],
        "momentum": [
            {
                "character_id": m.character_id,
                "recent": list(m.recent),
                "consecutive_positive": m.consecutive_positive,
                "consecutive_negative": m.consecutive_negative,
            } for m in state.momentum.values()
        ],
        "skill_levels": dict(state.skill_levels),
    }

def state_from_dict(data:Mapping[str, Any]) -> PlayerState:
    """ rebuilds a PlayerState from a state_to_dict snapshot """
    for key in ("player_id", "current_node_id"):
        if key not in data:
            raise ValueError(f'state snapshot missing {key}')

    characters = {}
    for c in data.get("characters", []):
        trust = c.get("trust", config.Settings.trust.DEFAULT_TRUST)
        if not util.is_finite_number(trust):
            raise ValueError(f'bad trust for {c.get("character_id")}: {trust!r}')
        characters[c["character_id"]] = CharacterState(
            c["character_id"],
            trust=clamp_trust(trust),
            relationship=parse_relationship(c.get("relationship", RelationshipStatus.STRANGER)),
            knowledge_flags=frozenset(c.get("knowledge_flags", [])),
            visited_unlocks=frozenset(c.get("visited_unlocks", [])),
            history=tuple(c.get("history", [])),
        )

    patterns = Patterns(**{parse_pattern(k).value: v for k, v in data.get("patterns", {}).items()})

    thoughts = tuple(
        IdentityThought(parse_pattern(t["pattern"]), ThoughtStatus(t.get("status", "dormant")), t.get("progress", 0))
        for t in data.get("thoughts", [])
    )

    momentum = {
        m["character_id"]: TrustMomentum(
            m["character_id"],
            tuple(m.get("recent", [])),
            m.get("consecutive_positive", 0),
            m.get("consecutive_negative", 0),
        ) for m in data.get("momentum", [])
    }

    return PlayerState(
        player_id=data["player_id"],
        current_node_id=data["current_node_id"],
        current_character_id=data.get("current_character_id"),
        patterns=patterns,
        characters=characters,
        global_flags=frozenset(data.get("global_flags", [])),
        thoughts=thoughts,
        momentum=momentum,
        skill_levels=dict(data.get("skill_levels", {})),
        version=data.get("version", 0),
    )
