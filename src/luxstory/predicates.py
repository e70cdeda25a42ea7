""" A boolean logic predicate library """

import abc
from typing import TypeVar, Generic, Iterable, Sequence

T = TypeVar('T')

class Criteria(Generic[T], abc.ABC):
    @abc.abstractmethod
    def evaluate(self, universe:T) -> bool: ...

    def children(self) -> Sequence["Criteria[T]"]:
        return ()

class Literal(Criteria[T]):
    def __init__(self, value:bool) -> None:
        self.value = value

    def evaluate(self, universe:T) -> bool:
        return self.value

    def __repr__(self) -> str:
        return f'Literal({self.value})'

class Negation(Criteria[T]):
    def __init__(self, inner:Criteria[T]) -> None:
        self.inner = inner

    def evaluate(self, universe:T) -> bool:
        return not self.inner.evaluate(universe)

    def children(self) -> Sequence[Criteria[T]]:
        return (self.inner,)

    def __repr__(self) -> str:
        return f'Negation({self.inner!r})'

class Disjunction(Criteria[T]):
    """ true if any inner criteria is true, short circuits left to right.

    An empty disjunction is false. """

    def __init__(self, *inner:Criteria[T]) -> None:
        self.inner:tuple[Criteria[T], ...] = tuple(inner)

    def evaluate(self, universe:T) -> bool:
        return any(c.evaluate(universe) for c in self.inner)

    def children(self) -> Sequence[Criteria[T]]:
        return self.inner

    def __repr__(self) -> str:
        return f'Disjunction({", ".join(repr(c) for c in self.inner)})'

class Conjunction(Criteria[T]):
    """ true if all inner criteria are true, short circuits left to right.

    An empty conjunction is true. """

    def __init__(self, *inner:Criteria[T]) -> None:
        self.inner:tuple[Criteria[T], ...] = tuple(inner)

    def evaluate(self, universe:T) -> bool:
        return all(c.evaluate(universe) for c in self.inner)

    def children(self) -> Sequence[Criteria[T]]:
        return self.inner

    def __repr__(self) -> str:
        return f'Conjunction({", ".join(repr(c) for c in self.inner)})'

def walk(criteria:Criteria[T]) -> Iterable[Criteria[T]]:
    """ yields criteria and all nested criteria, depth first """
    yield criteria
    for child in criteria.children():
        yield from walk(child)
