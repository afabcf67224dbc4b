"""Cassandra statement compiler.

Builds CQL statements for the column-store operations. Every value is bound
through ``%s`` placeholders (cassandra-driver simple statement binding); the
only literal ever embedded in query text is an integer TTL.

Cassandra supports:
- Comparison: = (any key column), IN (list values)
- CONTAINS on collection columns
- Map element put / remove
- USING TTL on INSERT and UPDATE, TTL(col) in projections

Limitations:
- No range or lexical operators (those belong to the search index)
- No OR groups
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from cassandra.query import ValueSequence

from crossstore.exceptions import InvalidFilterError, MissingTTLAliasError, ValidationError
from crossstore.querydsl.filters import ListFilter, OperatorFilter, OrFilter, ScalarFilter, classify_filters
from crossstore.utils import is_blank, require_id, require_key, validate_identifier

from .base import BaseCompiler
from .utils import qualified_table, render_statement

__all__ = (
    "CompiledStatement",
    "CompiledBatch",
    "CassandraStatementCompiler",
    "cassandra_compiler",
)


@dataclass(frozen=True)
class CompiledStatement:
    """A CQL statement with its positional parameters."""

    operation: str
    query: str
    params: Tuple[Any, ...] = ()

    def to_expr(self) -> str:
        return render_statement(self.query, self.params)


@dataclass(frozen=True)
class CompiledBatch:
    """Statements executed together as one logged batch."""

    operation: str
    statements: Tuple[CompiledStatement, ...] = field(default_factory=tuple)

    def to_expr(self) -> str:
        inner = "; ".join(s.to_expr() for s in self.statements)
        return f"BEGIN BATCH {inner}; APPLY BATCH"


class CassandraStatementCompiler(BaseCompiler):
    """Compile column-store requests into parameterized CQL statements.

    Capabilities:
    - SUPPORTS_RANGE: False (operator filters are rejected)
    - SUPPORTS_OR: False
    - SUPPORTS_TTL: True
    """

    SUPPORTS_RANGE = False
    SUPPORTS_OR = False
    SUPPORTS_TTL = True

    # ------------------------------------------------------------------
    # WHERE clauses
    # ------------------------------------------------------------------

    def to_where(self, filters: Optional[Mapping[str, Any]]) -> Tuple[str, List[Any]]:
        """Convert a filter map to ``(clause, params)``.

        Lists compile to ``IN %s`` and scalars to ``= %s``, whatever their
        position in the map. Returns an empty clause for an empty map.
        """
        clauses: List[str] = []
        params: List[Any] = []
        for flt in classify_filters(filters):
            if isinstance(flt, OrFilter):
                raise InvalidFilterError("OR groups are not supported by the column store")
            if isinstance(flt, OperatorFilter):
                raise InvalidFilterError(
                    "Range and lexical operators are not supported by the column store", field=flt.field
                )
            column = validate_identifier(flt.field, "column")
            if isinstance(flt, ListFilter):
                clauses.append(f"{column} IN %s")
                params.append(ValueSequence(flt.values))
            elif isinstance(flt, ScalarFilter):
                clauses.append(f"{column} = %s")
                params.append(flt.value)
        return " AND ".join(clauses), params

    def to_expr(self, compiled: Any) -> str:
        return compiled.to_expr()

    def _with_where(self, query: str, filters: Optional[Mapping[str, Any]]) -> Tuple[str, List[Any]]:
        clause, params = self.to_where(filters)
        if clause:
            query = f"{query} WHERE {clause}"
        return query, params

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(
        self,
        keyspace: str,
        table: str,
        record: Mapping[str, Any],
        ttl: int = 0,
        operation: str = "insert_record",
    ) -> CompiledStatement:
        if not isinstance(record, Mapping) or not record:
            raise ValidationError("Record must be a non-empty mapping", operation=operation, table=table)
        columns = [validate_identifier(c, "column") for c in record]
        placeholders = ", ".join(["%s"] * len(columns))
        query = f"INSERT INTO {qualified_table(keyspace, table)} ({', '.join(columns)}) VALUES ({placeholders})"
        if ttl and ttl > 0:
            query += f" USING TTL {int(ttl)}"
        return CompiledStatement(operation, query, tuple(record.values()))

    def update(
        self,
        keyspace: str,
        table: str,
        key: Mapping[str, Any],
        values: Mapping[str, Any],
        ttl: int = 0,
        operation: str = "update_record",
    ) -> CompiledStatement:
        """UPDATE ... SET <values> WHERE <key>.

        The SET column list comes from `values` directly; key values are bound
        after the SET values.
        """
        require_key(key, operation=operation, table=table)
        if not values:
            raise ValidationError("Nothing to update", operation=operation, table=table)
        overlap = sorted(set(key) & set(values))
        if overlap:
            raise ValidationError("Key columns cannot be updated", operation=operation, columns=overlap)
        set_clause = ", ".join(f"{validate_identifier(c, 'column')} = %s" for c in values)
        using = f" USING TTL {int(ttl)}" if ttl and ttl > 0 else ""
        query = f"UPDATE {qualified_table(keyspace, table)}{using} SET {set_clause}"
        query, where_params = self._with_where(query, key)
        return CompiledStatement(operation, query, tuple(values.values()) + tuple(where_params))

    def delete(
        self,
        keyspace: str,
        table: str,
        key: Mapping[str, Any],
        operation: str = "delete_record",
    ) -> CompiledStatement:
        require_key(key, operation=operation, table=table)
        query, params = self._with_where(f"DELETE FROM {qualified_table(keyspace, table)}", key)
        return CompiledStatement(operation, query, tuple(params))

    def delete_many(
        self,
        keyspace: str,
        table: str,
        ids: Sequence[Any],
        key_column: str = "id",
        operation: str = "delete_records",
    ) -> CompiledStatement:
        if not ids:
            raise ValidationError("At least one id is required", operation=operation, table=table)
        for identifier in ids:
            require_id(identifier, operation=operation, table=table)
        return self.delete(keyspace, table, {key_column: list(ids)}, operation=operation)

    def map_put(
        self,
        keyspace: str,
        table: str,
        key: Mapping[str, Any],
        column: str,
        map_key: Any,
        map_value: Any,
        operation: str = "update_add_map_record",
    ) -> CompiledStatement:
        require_key(key, operation=operation, table=table)
        column = validate_identifier(column, "column")
        query = f"UPDATE {qualified_table(keyspace, table)} SET {column}[%s] = %s"
        query, params = self._with_where(query, key)
        return CompiledStatement(operation, query, (map_key, map_value) + tuple(params))

    def map_remove(
        self,
        keyspace: str,
        table: str,
        key: Mapping[str, Any],
        column: str,
        map_key: Any,
        operation: str = "update_remove_map_record",
    ) -> CompiledStatement:
        require_key(key, operation=operation, table=table)
        column = validate_identifier(column, "column")
        query = f"UPDATE {qualified_table(keyspace, table)} SET {column} = {column} - %s"
        query, params = self._with_where(query, key)
        return CompiledStatement(operation, query, ({map_key},) + tuple(params))

    def batch(self, statements: Sequence[CompiledStatement], operation: str) -> CompiledBatch:
        if not statements:
            raise ValidationError("Batch must contain at least one statement", operation=operation)
        return CompiledBatch(operation, tuple(statements))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        keyspace: str,
        table: str,
        fields: Optional[Sequence[str]] = None,
        where: Optional[Mapping[str, Any]] = None,
        ttl_aliases: Optional[Mapping[str, str]] = None,
        operation: str = "get_records",
    ) -> CompiledStatement:
        """SELECT with optional projection, TTL columns and filter map.

        Args:
            fields: columns to return; ``*`` when empty and no TTL columns
            where: filter map (scalar -> ``=``, list -> ``IN``)
            ttl_aliases: column -> alias, rendered as ``TTL(column) AS alias``

        Raises:
            MissingTTLAliasError: if any alias is blank
        """
        projection = self._projection(fields, ttl_aliases)
        query = f"SELECT {projection} FROM {qualified_table(keyspace, table)}"
        query, params = self._with_where(query, where)
        return CompiledStatement(operation, query, tuple(params))

    def select_contains(
        self,
        keyspace: str,
        table: str,
        column: str,
        value: Any,
        where: Optional[Mapping[str, Any]] = None,
        operation: str = "search_value_in_list",
    ) -> CompiledStatement:
        column = validate_identifier(column, "column")
        if value is None:
            raise InvalidFilterError("CONTAINS value must not be None", field=column)
        query = f"SELECT * FROM {qualified_table(keyspace, table)} WHERE {column} CONTAINS %s"
        clause, params = self.to_where(where)
        if clause:
            query = f"{query} AND {clause}"
        return CompiledStatement(operation, query, (value,) + tuple(params))

    def _projection(
        self,
        fields: Optional[Sequence[str]],
        ttl_aliases: Optional[Mapping[str, str]],
    ) -> str:
        parts: List[str] = [validate_identifier(f, "column") for f in (fields or [])]
        for column, alias in (ttl_aliases or {}).items():
            if is_blank(alias):
                raise MissingTTLAliasError("TTL alias must not be blank", field=column)
            parts.append(f"TTL({validate_identifier(column, 'column')}) AS {validate_identifier(alias, 'alias')}")
        return ", ".join(parts) if parts else "*"


cassandra_compiler = CassandraStatementCompiler()
