"""Filter value classification.

A filter map mixes three value shapes under one field name: a scalar
(equality), a list (membership) and a mapping of operators (range and
lexical matching). Each value is resolved once, here, into one of the
variants below so the compilers can dispatch on type instead of
re-inspecting raw values.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from crossstore.constants import (
    CONFLICTING_OPERATORS,
    LEXICAL_OPERATORS,
    OR_KEY,
    RANGE_OPERATORS,
    FilterOperator,
)
from crossstore.exceptions import FilterTypeError, InvalidFilterError
from crossstore.utils import is_sequence

__all__ = (
    "ScalarFilter",
    "ListFilter",
    "OperatorFilter",
    "OrFilter",
    "Filter",
    "classify",
    "classify_filters",
    "is_or_key",
)


@dataclass(frozen=True)
class ScalarFilter:
    field: str
    value: Any


@dataclass(frozen=True)
class ListFilter:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class OperatorFilter:
    """Range bounds keyed by their search-index names plus lexical anchors."""

    field: str
    ranges: Dict[str, Any] = field(default_factory=dict)
    starts_with: Optional[str] = None
    ends_with: Optional[str] = None

    @property
    def has_lexical(self) -> bool:
        return self.starts_with is not None or self.ends_with is not None


@dataclass(frozen=True)
class OrFilter:
    members: Tuple[Union[ScalarFilter, ListFilter], ...]


Filter = Union[ScalarFilter, ListFilter, OperatorFilter, OrFilter]


def is_or_key(name: str) -> bool:
    return isinstance(name, str) and name.upper() == OR_KEY


def _classify_operators(name: str, ops: Mapping[str, Any]) -> OperatorFilter:
    if not ops:
        raise InvalidFilterError("Operator map must not be empty", field=name)
    unknown = [op for op in ops if op not in RANGE_OPERATORS and op not in LEXICAL_OPERATORS]
    if unknown:
        raise InvalidFilterError(
            f"Unsupported operator(s): {', '.join(map(str, unknown))}",
            field=name,
            supported=sorted(list(RANGE_OPERATORS) + list(LEXICAL_OPERATORS)),
        )
    for first, second in CONFLICTING_OPERATORS:
        if first in ops and second in ops:
            raise InvalidFilterError("Conflicting bounds on one field", field=name, operators=[first, second])
    for op, value in ops.items():
        if value is None:
            raise InvalidFilterError("Operator value must not be None", field=name, operator=op)
        if op in LEXICAL_OPERATORS and not isinstance(value, str):
            raise InvalidFilterError("Lexical operator expects a string", field=name, operator=op)
    return OperatorFilter(
        field=name,
        ranges={RANGE_OPERATORS[op]: value for op, value in ops.items() if op in RANGE_OPERATORS},
        starts_with=ops.get(FilterOperator.STARTS_WITH),
        ends_with=ops.get(FilterOperator.ENDS_WITH),
    )


def classify(name: str, value: Any) -> Union[ScalarFilter, ListFilter, OperatorFilter]:
    """Resolve one filter entry into its variant.

    Raises:
        InvalidFilterError: on None values, empty lists, empty or
            conflicting operator maps and unknown operators
    """
    if not isinstance(name, str) or not name:
        raise InvalidFilterError("Filter field must be a non-empty string", field=name)
    if value is None:
        raise InvalidFilterError("Filter value must not be None", field=name)
    if isinstance(value, Mapping):
        return _classify_operators(name, value)
    if is_sequence(value):
        values = tuple(value)
        if not values:
            raise InvalidFilterError("Filter list must not be empty", field=name)
        if any(v is None for v in values):
            raise InvalidFilterError("Filter list must not contain None", field=name)
        return ListFilter(field=name, values=values)
    return ScalarFilter(field=name, value=value)


def _classify_or(value: Any) -> OrFilter:
    if not isinstance(value, Mapping) or not value:
        raise FilterTypeError("OR group must be a non-empty mapping", field=OR_KEY)
    members: List[Union[ScalarFilter, ListFilter]] = []
    for name, member in value.items():
        classified = classify(name, member)
        if isinstance(classified, OperatorFilter):
            raise InvalidFilterError("OR group accepts only scalar or list values", field=name)
        members.append(classified)
    return OrFilter(members=tuple(members))


def classify_filters(filters: Optional[Mapping[str, Any]]) -> List[Filter]:
    """Classify every entry of a filter map, preserving map order."""
    if filters is None:
        return []
    if not isinstance(filters, Mapping):
        raise FilterTypeError("Filters must be a mapping", got=type(filters).__name__)
    return [_classify_or(value) if is_or_key(name) else classify(name, value) for name, value in filters.items()]
