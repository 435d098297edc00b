""" Utility methods broadly applicable across the codebase. """

import math
import logging
from typing import Any, Optional, Sequence, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

T = TypeVar('T')

def fullname(o:Any) -> str:
    # from https://stackoverflow.com/a/2020083/553580
    # Python makes no guarantees as to whether the __module__ special
    # attribute is defined, so we take a more circumspect approach.

    if isinstance(o, type):
        klass = o
    else:
        klass = o.__class__

    module = klass.__module__
    if module is None or module == str.__class__.__module__:
        return klass.__qualname__  # Avoid reporting __builtin__
    else:
        return module + '.' + klass.__qualname__

def clip(x:float, min_x:float, max_x:float) -> float:
    return min_x if x < min_x else max_x if x > max_x else x

def round_half_up(x:float) -> int:
    """ rounds to the nearest integer with halves going up (towards +inf)

    python's round() does banker's rounding which makes effect ranges
    asymmetric around .5 boundaries. """
    return int(math.floor(x + 0.5))

def elipsis(string:str, max_length:int, keep:Optional[int]=None) -> str:
    """ truncates string to keep characters plus "..." if it's longer than
    max_length """
    if len(string) <= max_length:
        return string
    if keep is None:
        keep = max_length - 3
    return string[:keep] + "..."

def is_number(value:Any) -> bool:
    """ true for ints and floats, but not bools which python considers ints """
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, (bool, np.bool_))

def is_range(value:Any) -> bool:
    """ true for a [min, max] pair of numbers """
    return isinstance(value, (list, tuple)) and len(value) == 2 and all(is_number(v) for v in value)

def choose(r:np.random.Generator, options:Sequence[T]) -> T:
    """ uniformly chooses one element of a python sequence

    r.choice would coerce elements into a numpy array which mangles mixed or
    nested values, so we choose an index instead. """
    if len(options) == 0:
        raise ValueError("cannot choose from an empty sequence")
    return options[int(r.integers(len(options)))]

def choose_weighted(r:np.random.Generator, options:Sequence[T], weights:Sequence[float]) -> T:
    """ chooses one element of options with probability proportional to weights """
    if len(options) != len(weights):
        raise ValueError(f'got {len(options)} options but {len(weights)} weights')
    p = np.array(weights, dtype=np.float64)
    total = p.sum()
    if not total > 0:
        raise ValueError(f'weights must have a positive sum, got {total}')
    return options[int(r.choice(len(options), p=p/total))]

def chance(r:np.random.Generator, probability:float) -> bool:
    """ true with the given probability """
    return bool(r.random() < probability)
