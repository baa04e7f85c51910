"""
Element-wise filtering of arguments and return values.

Shape rules:
- list / other sequences -> new list, relative order preserved
- tuple                  -> new tuple (sized to the kept elements)
- array.array            -> new array with the same typecode
- mappings               -> new dict (OrderedDict stays OrderedDict); the
                            predicate sees a `MapEntry` with `.key` / `.value`
- set / frozenset        -> same type
The source container is never mutated. Anything else is a ConfigurationError.
"""

from __future__ import annotations

import array
from collections import OrderedDict
from collections.abc import Callable, Mapping, Sequence, Set
from dataclasses import dataclass
import logging
import types
import typing
from typing import Any

from exprsec.security.errors import ConfigurationError
from exprsec.security.expressions import CompiledExpression, EvaluationContext
from exprsec.security.root import FILTER_OBJECT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MapEntry:
    key: Any
    value: Any


def is_filterable(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        return False
    return isinstance(value, (Sequence, Mapping, Set, array.array))


def is_filterable_type(tp: Any) -> bool:
    """Static counterpart of `is_filterable` for (possibly generic) annotations."""

    if hasattr(tp, "__metadata__"):
        tp = tp.__origin__
    if typing.get_origin(tp) in (typing.Union, types.UnionType):
        members = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        return len(members) == 1 and is_filterable_type(members[0])
    origin = getattr(tp, "__origin__", None) or tp
    if not isinstance(origin, type):
        return False
    if issubclass(origin, (str, bytes, bytearray, memoryview)):
        return False
    return issubclass(origin, (Sequence, Mapping, Set, array.array))


def filter_collection(target: Any, keep: Callable[[Any], bool]) -> Any:
    """Apply `keep` to every element of `target`, returning a new container."""

    if target is None:
        return None
    if not is_filterable(target):
        raise ConfigurationError(f"Filtering is not supported for {type(target).__name__!r}")

    if isinstance(target, Mapping):
        kept = [(k, v) for k, v in target.items() if keep(MapEntry(k, v))]
        result: Any = OrderedDict(kept) if isinstance(target, OrderedDict) else dict(kept)
    elif isinstance(target, array.array):
        result = array.array(target.typecode, [e for e in target if keep(e)])
    elif isinstance(target, tuple):
        result = tuple(e for e in target if keep(e))
    elif isinstance(target, Sequence):
        result = [e for e in target if keep(e)]
    elif isinstance(target, (set, frozenset)):
        result = type(target)(e for e in target if keep(e))
    else:
        result = {e for e in target if keep(e)}

    logger.debug("Filtered %s: %d -> %d elements", type(target).__name__, len(target), len(result))
    return result


def filter_with_expression(target: Any, expression: CompiledExpression, context: EvaluationContext) -> Any:
    """Filter `target`, evaluating `expression` with `filterObject` bound to each element."""

    def keep(element: Any) -> bool:
        return expression.evaluate_bool(context.with_variables(**{FILTER_OBJECT: element}))

    return filter_collection(target, keep)
