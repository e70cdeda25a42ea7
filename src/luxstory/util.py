""" Utility methods broadly applicable across the codebase. """

import math
import zlib
from typing import Any, Iterable

def fullname(o:Any) -> str:
    # from https://stackoverflow.com/a/2020083/553580
    # o.__module__ + "." + o.__class__.__qualname__ is an example in
    # this context of H.L. Mencken's "neat, plausible, and wrong."
    # Python makes no guarantees as to whether the __module__ special
    # attribute is defined, so we take a more circumspect approach.
    # Alas, the module name is explicitly excluded from __qualname__
    # in Python 3.

    if isinstance(o, type):
        klass = o
    else:
        klass = o.__class__

    module = klass.__module__
    if module is None or module == str.__class__.__module__:
        return klass.__qualname__  # Avoid reporting __builtin__
    else:
        return module + '.' + klass.__qualname__

def round_half_away(x:float) -> int:
    """ rounds to the nearest int, halves away from zero

    unlike builtin round (banker's rounding) this is symmetric and monotonic in
    magnitude, so scaling a delta up never rounds it down below the original.
    """
    if x >= 0:
        return int(math.floor(x + 0.5))
    else:
        return -int(math.floor(-x + 0.5))

def clamp(x:float, lb:float, ub:float) -> float:
    return max(lb, min(ub, x))

def stable_hash(*parts:Any) -> int:
    """ a hash that is stable across processes (unlike builtin hash) """
    return zlib.crc32("\0".join(str(p) for p in parts).encode("utf8"))

def is_finite_number(x:Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)

def sorted_join(values:Iterable[str], sep:str="|") -> str:
    return sep.join(sorted(values))
