"""Backend failure classification.

Maps driver exceptions from either store onto the `CrossStoreError`
taxonomy so callers never handle cassandra-driver or elasticsearch-py
exceptions directly.
"""

import concurrent.futures
import re
from typing import Any

from cassandra import OperationTimedOut, ReadTimeout, WriteTimeout
from cassandra.cluster import NoHostAvailable
from elasticsearch import ApiError, TransportError
from elasticsearch import ConnectionTimeout as ESConnectionTimeout

from .exceptions import (
    CrossStoreError,
    ExecutionError,
    InvalidPropertyError,
    QueryTimeoutError,
    SessionUnavailableError,
)

_SCHEMA_MISMATCH_RE = re.compile(r"(Unknown identifier|Undefined column name|Undefined name)\s+(\S+)")
_TIMEOUTS = (OperationTimedOut, ReadTimeout, WriteTimeout, concurrent.futures.TimeoutError, TimeoutError)


def schema_mismatch_field(message: str) -> Any:
    """Return the offending identifier if `message` reports a schema mismatch."""
    match = _SCHEMA_MISMATCH_RE.search(message or "")
    if not match:
        return None
    return match.group(2).strip("'\"`;,.")


def classify_cassandra_error(exc: BaseException, **context: Any) -> CrossStoreError:
    """Translate a Cassandra failure.

    - CrossStore errors pass through with `context` attached
    - "Unknown identifier" / "Undefined column name" -> InvalidPropertyError
    - timeouts -> QueryTimeoutError
    - NoHostAvailable -> SessionUnavailableError
    - anything else -> ExecutionError
    """
    if isinstance(exc, CrossStoreError):
        return exc.with_context(**context)
    message = str(exc)
    field = schema_mismatch_field(message)
    if field is not None:
        return InvalidPropertyError(f"Unknown property '{field}'", field=field, **context)
    if isinstance(exc, _TIMEOUTS):
        return QueryTimeoutError("Cassandra query timed out", original_error=message, **context)
    if isinstance(exc, NoHostAvailable):
        return SessionUnavailableError("No Cassandra host available", original_error=message, **context)
    return ExecutionError("Cassandra query failed", original_error=message, **context)


def classify_search_error(exc: BaseException, **context: Any) -> CrossStoreError:
    """Translate an Elasticsearch failure.

    Unknown-field errors become InvalidPropertyError, timeouts become
    QueryTimeoutError, everything else is an ExecutionError carrying the
    HTTP status when the client reported one.
    """
    if isinstance(exc, CrossStoreError):
        return exc.with_context(**context)
    message = str(exc)
    field = schema_mismatch_field(message)
    if field is not None:
        return InvalidPropertyError(f"Unknown property '{field}'", field=field, **context)
    if isinstance(exc, (ESConnectionTimeout,) + _TIMEOUTS):
        return QueryTimeoutError("Search request timed out", original_error=message, **context)
    if isinstance(exc, ApiError):
        return ExecutionError(
            "Search request failed", status=getattr(exc, "status_code", None), original_error=message, **context
        )
    if isinstance(exc, TransportError):
        return SessionUnavailableError("Search cluster unreachable", original_error=message, **context)
    return ExecutionError("Search request failed", original_error=message, **context)
