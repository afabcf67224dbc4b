"""Compiler utility functions.

Provides helpers for qualifying names, rendering CQL literals for logs,
and splitting nested search paths.
"""

import json
import re
from typing import Any, Mapping, Sequence, Tuple

from crossstore.utils import validate_identifier

_PLACEHOLDER = "%s"


def qualified_table(keyspace: str, table: str) -> str:
    """Return ``keyspace.table`` after validating both names."""
    return f"{validate_identifier(keyspace, 'keyspace')}.{validate_identifier(table, 'table')}"


def format_value_cql(v: Any) -> str:
    """Format a Python value as a CQL literal.

    Only used to render statements for logging; execution always binds.
    """
    if v is None:
        return "NULL"
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, str):
        return "'" + v.replace("'", "''") + "'"
    if isinstance(v, (list, tuple)):
        return "(" + ", ".join(format_value_cql(x) for x in v) + ")"
    if isinstance(v, (set, frozenset)):
        return "{" + ", ".join(format_value_cql(x) for x in sorted(v, key=repr)) + "}"
    if isinstance(v, Mapping):
        return "{" + ", ".join(f"{format_value_cql(k)}: {format_value_cql(x)}" for k, x in v.items()) + "}"
    return str(v)


def render_statement(query: str, params: Sequence[Any]) -> str:
    """Substitute bound parameters into a ``%s`` statement for display."""
    parts = query.split(_PLACEHOLDER)
    if len(parts) - 1 != len(params):
        return f"{query} -- params={list(params)!r}"
    out = [parts[0]]
    for value, tail in zip(params, parts[1:]):
        out.append(format_value_cql(value))
        out.append(tail)
    return "".join(out)


def render_json(body: Mapping[str, Any]) -> str:
    return json.dumps(body, sort_keys=True, default=str)


def split_nested_path(name: str) -> Tuple[str, str]:
    """Split ``path.field`` at the first dot into (path, field)."""
    path, _, leaf = name.partition(".")
    return path, leaf


def escape_regexp(value: str) -> str:
    """Escape Lucene regexp metacharacters."""
    return re.sub(r'([.?+*|{}\[\]()"\\#@&<>~^$])', r"\\\1", value)
