""" State condition evaluation

Conditions gate choices (visible/enabled), content variations and node entry.
They're a small tree of atomic predicates combined with All/AnyOf/Not, built on
the generic predicates library and evaluated against an EvaluationContext.

Evaluation is pure and never raises: a character missing from the state is
treated as a stranger with trust 0 and no knowledge flags.
"""

import abc
import dataclasses
from collections.abc import Mapping, Iterable, Sequence
from typing import Optional

from luxstory import predicates, state as st

@dataclasses.dataclass(frozen=True)
class EvaluationContext:
    state:st.PlayerState
    character_id:Optional[str] = None
    skill_levels:Mapping[str, float] = dataclasses.field(default_factory=dict)

    @property
    def character(self) -> Optional[st.CharacterState]:
        return self.state.character(self.character_id)

    @property
    def trust(self) -> int:
        cs = self.character
        return cs.trust if cs else 0

    @property
    def relationship(self) -> st.RelationshipStatus:
        cs = self.character
        return cs.relationship if cs else st.RelationshipStatus.STRANGER

    @property
    def knowledge_flags(self) -> frozenset[str]:
        cs = self.character
        return cs.knowledge_flags if cs else frozenset()

Condition = predicates.Criteria[EvaluationContext]

class Atom(predicates.Criteria[EvaluationContext]):
    """ a leaf condition that can explain why it failed """

    @abc.abstractmethod
    def describe(self, ctx:EvaluationContext) -> str: ...

def _range_str(lo:Optional[float], hi:Optional[float]) -> str:
    if lo is not None and hi is not None:
        return f'{lo}-{hi}'
    elif lo is not None:
        return f'at least {lo}'
    else:
        return f'at most {hi}'

def _in_range(value:float, lo:Optional[float], hi:Optional[float]) -> bool:
    if lo is not None and value < lo:
        return False
    if hi is not None and value > hi:
        return False
    return True

class PatternRange(Atom):
    def __init__(self, pattern:st.Pattern, lo:Optional[float]=None, hi:Optional[float]=None) -> None:
        self.pattern = pattern
        self.lo = lo
        self.hi = hi

    def evaluate(self, ctx:EvaluationContext) -> bool:
        return _in_range(ctx.state.patterns.get(self.pattern), self.lo, self.hi)

    def describe(self, ctx:EvaluationContext) -> str:
        return f'Need {self.pattern.value} {_range_str(self.lo, self.hi)} (have {ctx.state.patterns.get(self.pattern)})'

    def __repr__(self) -> str:
        return f'PatternRange({self.pattern.value}, {self.lo}, {self.hi})'

class TrustRange(Atom):
    def __init__(self, lo:Optional[int]=None, hi:Optional[int]=None) -> None:
        self.lo = lo
        self.hi = hi

    def evaluate(self, ctx:EvaluationContext) -> bool:
        return _in_range(ctx.trust, self.lo, self.hi)

    def describe(self, ctx:EvaluationContext) -> str:
        return f'Need trust {_range_str(self.lo, self.hi)} (have {ctx.trust})'

    def __repr__(self) -> str:
        return f'TrustRange({self.lo}, {self.hi})'

class RelationshipIn(Atom):
    def __init__(self, statuses:Iterable[st.RelationshipStatus]) -> None:
        self.statuses = frozenset(statuses)

    def evaluate(self, ctx:EvaluationContext) -> bool:
        return ctx.relationship in self.statuses

    def describe(self, ctx:EvaluationContext) -> str:
        names = " or ".join(sorted(s.value for s in self.statuses))
        return f'Need {names} relationship'

    def __repr__(self) -> str:
        return f'RelationshipIn({sorted(s.value for s in self.statuses)})'

class KnowledgeFlag(Atom):
    def __init__(self, flag:str, present:bool=True) -> None:
        self.flag = flag
        self.present = present

    def evaluate(self, ctx:EvaluationContext) -> bool:
        return (self.flag in ctx.knowledge_flags) == self.present

    def describe(self, ctx:EvaluationContext) -> str:
        if self.present:
            return f'{ctx.character_id or "character"} must know {self.flag}'
        return f'{ctx.character_id or "character"} must not know {self.flag}'

    def __repr__(self) -> str:
        return f'KnowledgeFlag({self.flag}, {self.present})'

class GlobalFlag(Atom):
    def __init__(self, flag:str, present:bool=True) -> None:
        self.flag = flag
        self.present = present

    def evaluate(self, ctx:EvaluationContext) -> bool:
        return (self.flag in ctx.state.global_flags) == self.present

    def describe(self, ctx:EvaluationContext) -> str:
        if self.present:
            return f'Missing requirement: {self.flag}'
        return f'Blocked by: {self.flag}'

    def __repr__(self) -> str:
        return f'GlobalFlag({self.flag}, {self.present})'

class SkillAtLeast(Atom):
    def __init__(self, skill:str, lo:float) -> None:
        self.skill = skill
        self.lo = lo

    def evaluate(self, ctx:EvaluationContext) -> bool:
        return ctx.skill_levels.get(self.skill, 0) >= self.lo

    def describe(self, ctx:EvaluationContext) -> str:
        return f'Need {self.skill} at least {self.lo} (have {ctx.skill_levels.get(self.skill, 0)})'

    def __repr__(self) -> str:
        return f'SkillAtLeast({self.skill}, {self.lo})'

# combinators, straight from the predicate library
All = predicates.Conjunction
AnyOf = predicates.Disjunction
Not = predicates.Negation
Always = predicates.Literal

def evaluate(condition:Optional[Condition], state:st.PlayerState, character_id:Optional[str]=None, skill_levels:Optional[Mapping[str, float]]=None) -> bool:
    """ evaluates condition against state. No condition means true.

    skill_levels defaults to the levels carried by state. """
    if condition is None:
        return True
    return condition.evaluate(_context(state, character_id, skill_levels))

def _context(state:st.PlayerState, character_id:Optional[str], skill_levels:Optional[Mapping[str, float]]) -> EvaluationContext:
    return EvaluationContext(state, character_id, skill_levels if skill_levels is not None else state.skill_levels)

def _unmet(condition:Condition, ctx:EvaluationContext) -> list[str]:
    if condition.evaluate(ctx):
        return []
    if isinstance(condition, Atom):
        return [condition.describe(ctx)]
    elif isinstance(condition, predicates.Conjunction):
        reasons = []
        for c in condition.inner:
            reasons.extend(_unmet(c, ctx))
        return reasons
    elif isinstance(condition, predicates.Disjunction):
        options = ["; ".join(_unmet(c, ctx)) for c in condition.inner]
        return [f'One of: {" | ".join(o for o in options if o)}'] if options else ["No options available"]
    elif isinstance(condition, predicates.Negation):
        return [f'Must not satisfy {condition.inner!r}']
    else:
        return ["Requirements not met"]

def unmet_reasons(condition:Optional[Condition], state:st.PlayerState, character_id:Optional[str]=None, skill_levels:Optional[Mapping[str, float]]=None) -> Sequence[str]:
    """ human readable reasons condition is not satisfied, empty if it is """
    if condition is None:
        return []
    return _unmet(condition, _context(state, character_id, skill_levels))

def depth(condition:Condition) -> int:
    children = condition.children()
    if not children:
        return 1
    return 1 + max(depth(c) for c in children)
