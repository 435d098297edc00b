""" A boolean logic predicate library """

import abc
import logging
from collections.abc import Callable, Iterable
from typing import TypeVar, Generic, Any

T = TypeVar('T')

logger = logging.getLogger(__name__)

class Criteria(Generic[T], abc.ABC):
    @abc.abstractmethod
    def evaluate(self, universe:T) -> bool: ...

class Literal(Criteria[T]):
    def __init__(self, value:bool) -> None:
        self.value = value
    def evaluate(self, universe:T) -> bool:
        return self.value

class Leaf(Criteria[T]):
    """ a named predicate function bound to its parameters """
    def __init__(self, kind:str, fn:Callable[[T, Any], bool], params:Any) -> None:
        self.kind = kind
        self.fn = fn
        self.params = params

    def evaluate(self, universe:T) -> bool:
        try:
            return bool(self.fn(universe, self.params))
        except KeyError as e:
            logger.warning(f'condition "{self.kind}" is missing param {e}, evaluating to false')
            return False

class Unknown(Criteria[T]):
    """ a predicate we don't know how to evaluate, always false """
    def __init__(self, kind:str) -> None:
        self.kind = kind

    def evaluate(self, universe:T) -> bool:
        logger.warning(f'unknown condition type "{self.kind}", evaluating to false')
        return False

class Negation(Criteria[T]):
    def __init__(self, inner:Criteria[T]) -> None:
        self.inner = inner

    def evaluate(self, universe:T) -> bool:
        return not self.inner.evaluate(universe)

class Disjunction(Criteria[T]):
    """ true if any inner criteria is true, an empty disjunction is false """
    def __init__(self, inner:Iterable[Criteria[T]]) -> None:
        self.inner = list(inner)

    def evaluate(self, universe:T) -> bool:
        return any(c.evaluate(universe) for c in self.inner)

class Conjunction(Criteria[T]):
    """ true if all inner criteria are true, an empty conjunction is true """
    def __init__(self, inner:Iterable[Criteria[T]]) -> None:
        self.inner = list(inner)

    def evaluate(self, universe:T) -> bool:
        return all(c.evaluate(universe) for c in self.inner)
