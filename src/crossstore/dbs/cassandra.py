"""Column-store operation façade over Apache Cassandra.

Every public method follows the same path: compile a CQL statement, execute
it on the keyspace's session, normalize the rows into an
`OperationResponse`. Failures are classified into `CrossStoreError`
subclasses carrying the operation, keyspace, table and elapsed time, and
every executed statement is logged at DEBUG with its duration.

Key Features:
    - Single-id and composite-key reads, writes and deletes
    - IN vs equality chosen per filter entry from the value's shape
    - Write TTLs and remaining-TTL reads with explicit aliases
    - Logged batches (insert, update, mixed)
    - Map column element put/remove and list CONTAINS search
    - Future-based asynchronous reads
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from cassandra.query import BatchStatement, BatchType, SimpleStatement

from crossstore.classifier import classify_cassandra_error
from crossstore.constants import TTL_ALIAS_SUFFIX, BatchAction
from crossstore.exceptions import CrossStoreError, FilterTypeError, InvalidKeyError, ValidationError
from crossstore.logger import Logger
from crossstore.normalizer import ResultNormalizer
from crossstore.querydsl.compilers.cassandra import (
    CassandraStatementCompiler,
    CompiledBatch,
    CompiledStatement,
    cassandra_compiler,
)
from crossstore.schema import BatchItem, KeyedUpdate, KeySchema, OperationResponse
from crossstore.sessions import HandleProvider
from crossstore.settings import settings as api_settings
from crossstore.types import CompositeKey, FilterMap, RecordKey
from crossstore.utils import Stopwatch, require_id, require_key


class CassandraOperations:
    """Public entry point for column-store operations.

    Attributes:
        provider: session provider (one session per keyspace)
        normalizer: converts result sets into `OperationResponse`
        key_schemas: table -> `KeySchema`; tables without an entry use a
            single ``id`` partition key
    """

    compiler: CassandraStatementCompiler = cassandra_compiler

    def __init__(
        self,
        provider: HandleProvider,
        normalizer: Optional[ResultNormalizer] = None,
        key_schemas: Optional[Mapping[str, Union[KeySchema, Mapping[str, Any]]]] = None,
        async_pool_size: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.normalizer = normalizer or ResultNormalizer()
        self.key_schemas: Dict[str, KeySchema] = {
            table: schema if isinstance(schema, KeySchema) else KeySchema(**schema)
            for table, schema in (key_schemas or {}).items()
        }
        self._async_pool_size = async_pool_size or api_settings.ASYNC_POOL_SIZE
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self.logger = Logger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def key_schema(self, table: str) -> KeySchema:
        return self.key_schemas.get(table) or KeySchema()

    def _id_key(self, table: str, identifier: Any, operation: str) -> Dict[str, Any]:
        identifier = require_id(identifier, operation=operation, table=table)
        return {self.key_schema(table).partition_keys[0]: identifier}

    def _record_key(self, table: str, key: RecordKey, operation: str) -> Dict[str, Any]:
        if isinstance(key, Mapping):
            return dict(require_key(key, operation=operation, table=table))
        return self._id_key(table, key, operation)

    def _execute(self, keyspace: str, table: str, compiled: Union[CompiledStatement, CompiledBatch]) -> Any:
        watch = Stopwatch()
        context = {"operation": compiled.operation, "keyspace": keyspace, "table": table}
        try:
            session = self.provider.get(keyspace)
            if isinstance(compiled, CompiledBatch):
                batch = BatchStatement(batch_type=BatchType.LOGGED)
                for statement in compiled.statements:
                    batch.add(SimpleStatement(statement.query), statement.params)
                return session.execute(batch)
            return session.execute(SimpleStatement(compiled.query), compiled.params)
        except CrossStoreError as e:
            raise e.with_context(elapsed_ms=round(watch.elapsed_ms, 2), **context)
        except Exception as e:
            self.logger.error("%s failed on %s.%s: %s", compiled.operation, keyspace, table, e)
            raise classify_cassandra_error(e, elapsed_ms=round(watch.elapsed_ms, 2), **context) from e
        finally:
            self.logger.query(compiled.operation, compiled.to_expr(), watch.elapsed_ms)

    def _read(self, keyspace: str, table: str, compiled: CompiledStatement) -> OperationResponse:
        return self.normalizer.from_rows(self._execute(keyspace, table, compiled))

    def _write(self, keyspace: str, table: str, compiled: Union[CompiledStatement, CompiledBatch]) -> OperationResponse:
        self._execute(keyspace, table, compiled)
        return OperationResponse.success()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_record(
        self, keyspace: str, table: str, record: Mapping[str, Any], ttl: int = 0
    ) -> OperationResponse:
        """Insert one record; `ttl` > 0 makes every written column expire."""
        stmt = self.compiler.insert(keyspace, table, record, ttl=ttl, operation="insert_record")
        return self._write(keyspace, table, stmt)

    def insert_record_with_ttl(
        self, keyspace: str, table: str, record: Mapping[str, Any], ttl: int
    ) -> OperationResponse:
        stmt = self.compiler.insert(keyspace, table, record, ttl=ttl, operation="insert_record_with_ttl")
        return self._write(keyspace, table, stmt)

    def upsert_record(self, keyspace: str, table: str, record: Mapping[str, Any]) -> OperationResponse:
        """Insert or overwrite by primary key. Applying it twice equals applying it once."""
        stmt = self.compiler.insert(keyspace, table, record, operation="upsert_record")
        return self._write(keyspace, table, stmt)

    def update_record(self, keyspace: str, table: str, record: Mapping[str, Any]) -> OperationResponse:
        """Update using the table's key schema to split key from values."""
        key, values = self.key_schema(table).split(record)
        stmt = self.compiler.update(keyspace, table, key, values, operation="update_record")
        return self._write(keyspace, table, stmt)

    def update_record_by_key(
        self, keyspace: str, table: str, attributes: Mapping[str, Any], key: CompositeKey
    ) -> OperationResponse:
        stmt = self.compiler.update(keyspace, table, key, attributes, operation="update_record_by_key")
        return self._write(keyspace, table, stmt)

    def update_record_with_ttl(
        self,
        keyspace: str,
        table: str,
        attributes: Mapping[str, Any],
        key: CompositeKey,
        ttl: int,
    ) -> OperationResponse:
        stmt = self.compiler.update(keyspace, table, key, attributes, ttl=ttl, operation="update_record_with_ttl")
        return self._write(keyspace, table, stmt)

    def update_add_map_record(
        self,
        keyspace: str,
        table: str,
        key: CompositeKey,
        column: str,
        map_key: Any,
        value: Any,
    ) -> OperationResponse:
        """Set ``column[map_key] = value`` on the record(s) matching `key`."""
        stmt = self.compiler.map_put(keyspace, table, key, column, map_key, value)
        return self._write(keyspace, table, stmt)

    def update_remove_map_record(
        self, keyspace: str, table: str, key: CompositeKey, column: str, map_key: Any
    ) -> OperationResponse:
        stmt = self.compiler.map_remove(keyspace, table, key, column, map_key)
        return self._write(keyspace, table, stmt)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete_record(self, keyspace: str, table: str, identifier: str) -> OperationResponse:
        key = self._id_key(table, identifier, "delete_record")
        return self._write(keyspace, table, self.compiler.delete(keyspace, table, key, operation="delete_record"))

    def delete_record_by_key(self, keyspace: str, table: str, key: CompositeKey) -> OperationResponse:
        stmt = self.compiler.delete(keyspace, table, key, operation="delete_record_by_key")
        return self._write(keyspace, table, stmt)

    def delete_records(self, keyspace: str, table: str, identifiers: Sequence[str]) -> bool:
        """Delete every id in one ``IN`` statement. Returns True once applied."""
        column = self.key_schema(table).partition_keys[0]
        stmt = self.compiler.delete_many(keyspace, table, list(identifiers), key_column=column)
        self._execute(keyspace, table, stmt)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_record_by_id(
        self, keyspace: str, table: str, key: RecordKey, fields: Optional[Sequence[str]] = None
    ) -> OperationResponse:
        """Fetch by single id or composite key, optionally projecting `fields`."""
        where = self._record_key(table, key, "get_record_by_id")
        stmt = self.compiler.select(keyspace, table, fields=fields, where=where, operation="get_record_by_id")
        return self._read(keyspace, table, stmt)

    def get_records_by_composite_key(
        self, keyspace: str, table: str, key: CompositeKey, fields: Optional[Sequence[str]] = None
    ) -> OperationResponse:
        require_key(key, operation="get_records_by_composite_key", table=table)
        stmt = self.compiler.select(keyspace, table, fields=fields, where=key, operation="get_records_by_composite_key")
        return self._read(keyspace, table, stmt)

    def get_records_by_composite_partition_key(
        self, keyspace: str, table: str, partition_key: CompositeKey
    ) -> OperationResponse:
        """String values match with ``=``, list values with ``IN``."""
        require_key(partition_key, operation="get_records_by_composite_partition_key", table=table)
        stmt = self.compiler.select(
            keyspace, table, where=partition_key, operation="get_records_by_composite_partition_key"
        )
        return self._read(keyspace, table, stmt)

    def get_records_by_property(
        self,
        keyspace: str,
        table: str,
        property_name: str,
        value: Any,
        fields: Optional[Sequence[str]] = None,
    ) -> OperationResponse:
        stmt = self.compiler.select(
            keyspace, table, fields=fields, where={property_name: value}, operation="get_records_by_property"
        )
        return self._read(keyspace, table, stmt)

    def get_records_by_properties(
        self,
        keyspace: str,
        table: str,
        properties: FilterMap,
        fields: Optional[Sequence[str]] = None,
    ) -> OperationResponse:
        if not properties:
            raise FilterTypeError("Property map must not be empty", operation="get_records_by_properties", table=table)
        stmt = self.compiler.select(
            keyspace, table, fields=fields, where=properties, operation="get_records_by_properties"
        )
        return self._read(keyspace, table, stmt)

    def get_records(
        self,
        keyspace: str,
        table: str,
        filters: Optional[FilterMap] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> OperationResponse:
        """Filtered read; no filters returns the whole table."""
        stmt = self.compiler.select(keyspace, table, fields=fields, where=filters or None, operation="get_records")
        return self._read(keyspace, table, stmt)

    def get_all_records(
        self, keyspace: str, table: str, fields: Optional[Sequence[str]] = None
    ) -> OperationResponse:
        stmt = self.compiler.select(keyspace, table, fields=fields, operation="get_all_records")
        return self._read(keyspace, table, stmt)

    def get_properties_value_by_id(
        self,
        keyspace: str,
        table: str,
        identifiers: Union[str, Sequence[str]],
        properties: Sequence[str],
    ) -> OperationResponse:
        """Project `properties` for one id or a list of ids."""
        column = self.key_schema(table).partition_keys[0]
        if isinstance(identifiers, str):
            where: Dict[str, Any] = self._id_key(table, identifiers, "get_properties_value_by_id")
        else:
            ids = [require_id(i, operation="get_properties_value_by_id", table=table) for i in identifiers]
            if not ids:
                raise InvalidKeyError("At least one id is required", operation="get_properties_value_by_id")
            where = {column: ids}
        stmt = self.compiler.select(
            keyspace, table, fields=properties, where=where, operation="get_properties_value_by_id"
        )
        return self._read(keyspace, table, stmt)

    def get_records_by_ids(
        self,
        keyspace: str,
        table: str,
        identifiers: Sequence[str],
        fields: Optional[Sequence[str]] = None,
        key_column: Optional[str] = None,
    ) -> OperationResponse:
        """Fetch many records with one ``IN`` query on `key_column`."""
        ids = [require_id(i, operation="get_records_by_ids", table=table) for i in identifiers]
        if not ids:
            raise InvalidKeyError("At least one id is required", operation="get_records_by_ids", table=table)
        column = key_column or self.key_schema(table).partition_keys[0]
        stmt = self.compiler.select(keyspace, table, fields=fields, where={column: ids}, operation="get_records_by_ids")
        return self._read(keyspace, table, stmt)

    def get_record_with_ttl_by_id(
        self,
        keyspace: str,
        table: str,
        key: RecordKey,
        ttl_fields: Sequence[str],
        fields: Optional[Sequence[str]] = None,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> OperationResponse:
        """Read a record plus the remaining TTL of `ttl_fields`.

        Each TTL field is returned under its alias; the default alias is
        ``<field>_ttl``. A blank alias raises `MissingTTLAliasError` before any
        query runs.
        """
        if aliases is None:
            ttl_aliases = {f: f"{f}{TTL_ALIAS_SUFFIX}" for f in ttl_fields}
        else:
            ttl_aliases = {f: aliases.get(f, "") for f in ttl_fields}
        where = self._record_key(table, key, "get_record_with_ttl_by_id")
        stmt = self.compiler.select(
            keyspace,
            table,
            fields=fields,
            where=where,
            ttl_aliases=ttl_aliases,
            operation="get_record_with_ttl_by_id",
        )
        return self._read(keyspace, table, stmt)

    def get_records_with_ttl(
        self,
        keyspace: str,
        table: str,
        keys: CompositeKey,
        properties: Sequence[str],
        ttl_aliases: Mapping[str, str],
    ) -> OperationResponse:
        """Read `properties` plus aliased TTL columns for the rows matching `keys`."""
        require_key(keys, operation="get_records_with_ttl", table=table)
        stmt = self.compiler.select(
            keyspace,
            table,
            fields=properties,
            where=keys,
            ttl_aliases=ttl_aliases,
            operation="get_records_with_ttl",
        )
        return self._read(keyspace, table, stmt)

    def search_value_in_list(
        self,
        keyspace: str,
        table: str,
        column: str,
        value: Any,
        filters: Optional[FilterMap] = None,
    ) -> OperationResponse:
        """Rows whose collection `column` CONTAINS `value`, narrowed by `filters`."""
        stmt = self.compiler.select_contains(keyspace, table, column, value, where=filters or {})
        return self._read(keyspace, table, stmt)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def batch_insert(
        self,
        keyspace: str,
        table: str,
        records: Sequence[Mapping[str, Any]],
        ttls: Optional[Sequence[int]] = None,
    ) -> OperationResponse:
        """Insert all records in one logged batch, each with its own optional TTL."""
        if ttls is not None and len(ttls) != len(records):
            raise ValidationError(
                "ttls must match records one to one",
                operation="batch_insert",
                records=len(records),
                ttls=len(ttls),
            )
        statements = [
            self.compiler.insert(keyspace, table, record, ttl=(ttls[i] if ttls else 0), operation="batch_insert")
            for i, record in enumerate(records)
        ]
        return self._write(keyspace, table, self.compiler.batch(statements, "batch_insert"))

    def batch_update_by_id(
        self, keyspace: str, table: str, records: Sequence[Mapping[str, Any]]
    ) -> OperationResponse:
        """Key columns of each record go to WHERE, everything else to SET."""
        schema = self.key_schema(table)
        statements = []
        for record in records:
            key, values = schema.split(record)
            statements.append(self.compiler.update(keyspace, table, key, values, operation="batch_update_by_id"))
        return self._write(keyspace, table, self.compiler.batch(statements, "batch_update_by_id"))

    def batch_update(
        self,
        keyspace: str,
        table: str,
        updates: Sequence[Union[KeyedUpdate, Mapping[str, Any]]],
    ) -> OperationResponse:
        """Apply explicit (key, columns) updates in one logged batch."""
        statements = []
        for raw in updates:
            update = KeyedUpdate.from_dict(raw)
            statements.append(
                self.compiler.update(keyspace, table, update.key, update.columns, operation="batch_update")
            )
        return self._write(keyspace, table, self.compiler.batch(statements, "batch_update"))

    def perform_batch_action(
        self,
        keyspace: str,
        table: str,
        items: Sequence[Union[BatchItem, Mapping[str, Any]]],
    ) -> OperationResponse:
        """Mixed inserts and updates in one logged batch, in the given order."""
        schema = self.key_schema(table)
        statements = []
        for raw in items:
            item = BatchItem.from_dict(raw)
            if item.action == BatchAction.INSERT:
                statements.append(
                    self.compiler.insert(keyspace, table, item.record, ttl=item.ttl, operation="perform_batch_action")
                )
            else:
                key, values = schema.split(item.record)
                statements.append(
                    self.compiler.update(
                        keyspace, table, key, values, ttl=item.ttl, operation="perform_batch_action"
                    )
                )
        return self._write(keyspace, table, self.compiler.batch(statements, "perform_batch_action"))

    # ------------------------------------------------------------------
    # Async
    # ------------------------------------------------------------------

    @property
    def executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._async_pool_size, thread_name_prefix="crossstore-async"
                )
            return self._executor

    def apply_operation_on_records_async(
        self,
        keyspace: str,
        table: str,
        filters: Optional[FilterMap],
        fields: Optional[Sequence[str]],
        callback: Callable[[OperationResponse], Any],
        error_callback: Optional[Callable[[CrossStoreError], Any]] = None,
    ) -> "Future[OperationResponse]":
        """Run `get_records` on the async pool.

        `callback` runs exactly once, on a pool thread, after the read
        completes. On failure `error_callback` (if given) receives the
        classified error instead, and the returned future raises it.
        """

        def task() -> OperationResponse:
            try:
                response = self.get_records(keyspace, table, filters=filters, fields=fields)
            except CrossStoreError as e:
                if error_callback is not None:
                    error_callback(e)
                raise
            callback(response)
            return response

        return self.executor.submit(task)

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
