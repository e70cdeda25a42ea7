""" Condition Parsing

Authored content describes conditions either as criteria strings or as
structured tables. Both compile to a condition tree once, at load time.
"""

import re
from collections.abc import Mapping
from typing import Any, Union

from luxstory import util, conditions, state as st

NUM_RE = re.compile(r"-?[0-9]+(\.[0-9]+)?")
NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_:\-]*")

# deeper than this is an authoring mistake, not a real condition
MAX_DEPTH = 16

def _parse_num(data:str) -> tuple[Union[int, float], int]:
    m = NUM_RE.match(data)
    if not m:
        raise ValueError(f'expected a number at "{data}"')
    text = m.group(0)
    return (float(text) if m.group(1) else int(text)), m.end()

def _parse_name(data:str) -> tuple[str, int]:
    m = NAME_RE.match(data)
    if not m:
        raise ValueError(f'expected a name at "{data}"')
    return m.group(0), m.end()

def _ranged(ref:str, lo:Any, hi:Any) -> conditions.Condition:
    if ref == "trust":
        return conditions.TrustRange(lo, hi)
    if ref.startswith("skill:"):
        if hi is not None:
            raise ValueError(f'skill criteria only support a lower bound "{ref}"')
        return conditions.SkillAtLeast(ref[len("skill:"):], lo if lo is not None else 0)
    return conditions.PatternRange(st.parse_pattern(ref), lo, hi)

def _flag(ref:str, present:bool) -> conditions.Condition:
    if ref.startswith("flag:"):
        return conditions.GlobalFlag(ref[len("flag:"):], present)
    elif ref.startswith("knows:"):
        return conditions.KnowledgeFlag(ref[len("knows:"):], present)
    raise ValueError(f'expected flag:NAME or knows:NAME, got "{ref}"')

def parse_criteria(cri:str) -> conditions.Condition:

    if not isinstance(cri, str):
        raise ValueError(f'criteria must be a string, got {cri!r}')

    # CRITERIA := [NUM "<="] REF ["<=" NUM] | FLAG_REF | "!" FLAG_REF | RELATIONSHIP
    # REF := PATTERN | "trust" | "skill:" NAME
    # FLAG_REF := "flag:" NAME | "knows:" NAME
    # RELATIONSHIP := "relationship" "=" STATUS ("|" STATUS)*

    data = cri.strip()
    if data == "":
        raise ValueError("empty criteria")

    if data[0] == "!":
        ref, pos = _parse_name(data[1:].lstrip())
        if data[1:].lstrip()[pos:].strip() != "":
            raise ValueError(f'had left-over string in inverted criteria "{cri}"')
        return _flag(ref, False)

    lo:Any = None
    if NUM_RE.match(data):
        lo, pos = _parse_num(data)
        data = data[pos:].lstrip()
        if not data.startswith("<="):
            raise ValueError(f'expected lower bound as "<=" in "{cri}"')
        data = data[2:].lstrip()

    ref, pos = _parse_name(data)
    data = data[pos:].lstrip()

    if ref == "relationship":
        if lo is not None or not data.startswith("="):
            raise ValueError(f'expected "relationship = STATUS" in "{cri}"')
        statuses = [s.strip() for s in data[1:].split("|")]
        return conditions.RelationshipIn(st.parse_relationship(s) for s in statuses)

    if ref.startswith("flag:") or ref.startswith("knows:"):
        if lo is not None or data != "":
            raise ValueError(f'flag criteria take no bounds "{cri}"')
        return _flag(ref, True)

    hi:Any = None
    if data.startswith("<="):
        hi, pos = _parse_num(data[2:].lstrip())
        data = data[2:].lstrip()[pos:].lstrip()

    if data != "":
        raise ValueError(f'had left-over string in criteria "{cri}"')
    if lo is None and hi is None:
        raise ValueError(f'criteria on {ref} needs a bound "{cri}"')

    return _ranged(ref, lo, hi)

def _bounds(value:Any, what:str) -> tuple[Any, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f'{what} must be a table with min and/or max, got {value!r}')
    unknown = set(value.keys()) - {"min", "max"}
    if unknown:
        raise ValueError(f'unknown keys {sorted(unknown)} in {what}')
    for k in ("min", "max"):
        if k in value and not util.is_finite_number(value[k]):
            raise ValueError(f'{k} of {what} must be a number, got {value[k]!r}')
    return value.get("min"), value.get("max")

def _string_list(value:Any, what:str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ValueError(f'{what} must be a list of strings, got {value!r}')
    return value

def _parse_table(data:Mapping[str, Any]) -> conditions.Condition:
    parts:list[conditions.Condition] = []
    for key, value in data.items():
        if key == "trust":
            parts.append(conditions.TrustRange(*_bounds(value, "trust")))
        elif key == "relationship":
            parts.append(conditions.RelationshipIn(st.parse_relationship(s) for s in _string_list(value, key)))
        elif key == "has_knowledge_flags":
            parts.extend(conditions.KnowledgeFlag(f) for f in _string_list(value, key))
        elif key == "lacks_knowledge_flags":
            parts.extend(conditions.KnowledgeFlag(f, False) for f in _string_list(value, key))
        elif key == "has_global_flags":
            parts.extend(conditions.GlobalFlag(f) for f in _string_list(value, key))
        elif key == "lacks_global_flags":
            parts.extend(conditions.GlobalFlag(f, False) for f in _string_list(value, key))
        elif key == "patterns":
            if not isinstance(value, Mapping):
                raise ValueError(f'patterns must be a table, got {value!r}')
            for name, bounds in value.items():
                parts.append(conditions.PatternRange(st.parse_pattern(name), *_bounds(bounds, f'pattern {name}')))
        elif key == "skills":
            if not isinstance(value, Mapping):
                raise ValueError(f'skills must be a table, got {value!r}')
            for name, lo in value.items():
                if not util.is_finite_number(lo):
                    raise ValueError(f'skill {name} minimum must be a number, got {lo!r}')
                parts.append(conditions.SkillAtLeast(name, lo))
        elif key == "all":
            parts.append(conditions.All(*(parse_condition(x) for x in value)))
        elif key == "any":
            parts.append(conditions.AnyOf(*(parse_condition(x) for x in value)))
        elif key == "not":
            parts.append(conditions.Not(parse_condition(value)))
        else:
            raise ValueError(f'unknown condition key "{key}"')

    if len(parts) == 1:
        return parts[0]
    return conditions.All(*parts)

def parse_condition(data:Any) -> conditions.Condition:
    """
    Compiles authored condition data into a condition tree.

    Parameters
    ----------
    data : str, list or dict
        a single criteria string, a list of criteria (strings or tables, all
        of which must hold) or a structured condition table

    Returns
    -------
    out : conditions.Condition
        the compiled condition
    """

    if isinstance(data, str):
        condition = parse_criteria(data)
    elif isinstance(data, list):
        parsed = [parse_condition(x) for x in data]
        if not parsed:
            condition = conditions.Always(True)
        elif len(parsed) == 1:
            condition = parsed[0]
        else:
            condition = conditions.All(*parsed)
    elif isinstance(data, Mapping):
        condition = _parse_table(data)
    else:
        raise ValueError(f'condition must be a string, list or table, got {data!r}')

    if conditions.depth(condition) > MAX_DEPTH:
        raise ValueError(f'condition nested deeper than {MAX_DEPTH}')
    return condition
