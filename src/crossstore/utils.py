"""Utility functions for crossstore.

Shared helpers used by the compilers and operation façades.
"""

import re
import time
from typing import Any, Mapping, Optional

from .exceptions import InvalidKeyError, ValidationError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ===========================================================================
# Validation helpers
# ===========================================================================


def validate_identifier(name: Any, kind: str = "identifier") -> str:
    """Return `name` if it is a safe CQL identifier, else raise ValidationError."""
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ValidationError(f"Invalid {kind} name", **{kind: name})
    return name


def is_blank(value: Any) -> bool:
    """True for None and strings that are empty after stripping."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def require_id(identifier: Any, **context: Any) -> str:
    """Validate a single record id or document identifier."""
    if is_blank(identifier):
        raise InvalidKeyError("Record id must not be blank", **context)
    if not isinstance(identifier, str):
        identifier = str(identifier)
    return identifier


def require_key(key: Optional[Mapping[str, Any]], **context: Any) -> Mapping[str, Any]:
    """Validate a composite key map: non-empty, no blank values."""
    if not isinstance(key, Mapping) or not key:
        raise InvalidKeyError("Composite key must be a non-empty mapping", **context)
    for column, value in key.items():
        if is_blank(value):
            raise InvalidKeyError("Composite key value must not be blank", column=column, **context)
    return key


def is_sequence(value: Any) -> bool:
    """True for list-like filter values (strings and mappings excluded)."""
    return isinstance(value, (list, tuple, set, frozenset))


# ===========================================================================
# Timing
# ===========================================================================


class Stopwatch:
    """Wall-clock timer started on construction."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0
