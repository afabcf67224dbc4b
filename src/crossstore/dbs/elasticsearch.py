"""Search-index operation façade over Elasticsearch.

Compiles `SearchRequest` objects with the search compiler, runs every client
call on a worker pool bounded by ``SEARCH_TIMEOUT_SECONDS`` and normalizes
the responses into `OperationResponse` objects or plain documents.

Key Features:
    - Filtered, faceted, sorted and paginated search
    - Document save / update / upsert / delete / get
    - Bulk indexing through ``elasticsearch.helpers.bulk``
    - Multi-id fetch and cluster health check
"""

import concurrent.futures
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from elasticsearch import NotFoundError, helpers

from crossstore.classifier import classify_search_error
from crossstore.exceptions import CrossStoreError, QueryTimeoutError, ValidationError
from crossstore.logger import Logger
from crossstore.normalizer import ResultNormalizer
from crossstore.querydsl.compilers.elasticsearch import SearchQueryCompiler, search_compiler
from crossstore.querydsl.compilers.utils import render_json
from crossstore.schema import OperationResponse, SearchRequest
from crossstore.sessions import HandleProvider
from crossstore.settings import settings as api_settings
from crossstore.utils import Stopwatch, require_id

_RAISE = object()
_CLUSTER_NAMESPACE = "_cluster"


class SearchOperations:
    """Public entry point for search-index operations.

    Attributes:
        provider: client provider (one shared client)
        normalizer: converts search responses into `OperationResponse`
        timeout: seconds to wait for any single client call
    """

    compiler: SearchQueryCompiler = search_compiler

    def __init__(
        self,
        provider: HandleProvider,
        normalizer: Optional[ResultNormalizer] = None,
        timeout: Optional[float] = None,
        pool_size: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.normalizer = normalizer or ResultNormalizer()
        self.timeout = timeout if timeout is not None else api_settings.SEARCH_TIMEOUT_SECONDS
        self._pool_size = pool_size or api_settings.SEARCH_POOL_SIZE
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self.logger = Logger(self.__class__.__name__)

    @property
    def executor(self) -> concurrent.futures.ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self._pool_size, thread_name_prefix="crossstore-search"
                )
            return self._executor

    def _call(
        self,
        operation: str,
        index: str,
        fn: Callable[[Any], Any],
        expr: str,
        missing: Any = _RAISE,
    ) -> Any:
        """Run ``fn(client)`` on the pool and wait at most `timeout` seconds.

        When `missing` is given, a not-found response returns it instead of
        raising.
        """
        watch = Stopwatch()
        context = {"operation": operation, "index": index}
        try:
            client = self.provider.get(index)
            future = self.executor.submit(fn, client)
            try:
                return future.result(timeout=self.timeout)
            except concurrent.futures.TimeoutError as e:
                future.cancel()
                raise QueryTimeoutError(
                    "Search request timed out",
                    timeout=self.timeout,
                    elapsed_ms=round(watch.elapsed_ms, 2),
                    **context,
                ) from e
        except NotFoundError as e:
            if missing is not _RAISE:
                return missing
            raise classify_search_error(e, elapsed_ms=round(watch.elapsed_ms, 2), **context) from e
        except CrossStoreError as e:
            raise e.with_context(elapsed_ms=round(watch.elapsed_ms, 2), **context)
        except Exception as e:
            self.logger.error("%s failed on index %s: %s", operation, index, e)
            raise classify_search_error(e, elapsed_ms=round(watch.elapsed_ms, 2), **context) from e
        finally:
            self.logger.query(operation, expr, watch.elapsed_ms)

    @staticmethod
    def _document(data: Any, operation: str) -> Dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ValidationError("Document must be a mapping", operation=operation, got=type(data).__name__)
        return dict(data)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, request: Any, index: str) -> OperationResponse:
        """Compile and run a search.

        Args:
            request: `SearchRequest` or a mapping accepted by it
            index: index name

        Returns:
            OperationResponse with one record per hit, the total hit count
            and facets in request order (when facets were requested)
        """
        request = SearchRequest.from_dict(request)
        index = require_id(index, operation="search")
        compiled = self.compiler.compile(request)
        kwargs = compiled.to_kwargs()
        response = self._call(
            "search",
            index,
            lambda client: client.search(index=index, **kwargs),
            compiled.to_expr(),
        )
        return self.normalizer.from_search(response, request.facets)

    def get_by_ids(
        self,
        identifiers: Sequence[str],
        fields: Optional[Sequence[str]] = None,
        index: str = "",
    ) -> Dict[str, Dict[str, Any]]:
        """Fetch documents by id; returns ``{id: source}`` for the ids found."""
        index = require_id(index, operation="get_by_ids")
        ids = [require_id(i, operation="get_by_ids", index=index) for i in identifiers]
        if not ids:
            return {}
        query = {"ids": {"values": ids}}
        kwargs: Dict[str, Any] = {"query": query, "size": len(ids)}
        if fields is not None:
            kwargs["source"] = list(fields)
        response = self._call(
            "get_by_ids",
            index,
            lambda client: client.search(index=index, **kwargs),
            render_json(kwargs),
        )
        return self.normalizer.documents_by_id(response)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def save(self, index: str, identifier: str, data: Mapping[str, Any]) -> str:
        """Index `data` under `identifier` (create or replace). Returns the id."""
        index = require_id(index, operation="save")
        identifier = require_id(identifier, operation="save", index=index)
        document = self._document(data, "save")
        self._call(
            "save",
            index,
            lambda client: client.index(index=index, id=identifier, document=document),
            f"PUT {index}/_doc/{identifier}",
        )
        return identifier

    def update(self, index: str, identifier: str, data: Mapping[str, Any]) -> bool:
        """Partially update an existing document."""
        index = require_id(index, operation="update")
        identifier = require_id(identifier, operation="update", index=index)
        document = self._document(data, "update")
        self._call(
            "update",
            index,
            lambda client: client.update(index=index, id=identifier, doc=document),
            f"POST {index}/_update/{identifier}",
        )
        return True

    def upsert(self, index: str, identifier: str, data: Mapping[str, Any]) -> bool:
        """Update the document, creating it from `data` when it does not exist."""
        index = require_id(index, operation="upsert")
        identifier = require_id(identifier, operation="upsert", index=index)
        document = self._document(data, "upsert")
        self._call(
            "upsert",
            index,
            lambda client: client.update(index=index, id=identifier, doc=document, doc_as_upsert=True),
            f"POST {index}/_update/{identifier} doc_as_upsert",
        )
        return True

    def get_by_id(self, index: str, identifier: str) -> Dict[str, Any]:
        """Return the stored document, or an empty dict when it does not exist."""
        index = require_id(index, operation="get_by_id")
        identifier = require_id(identifier, operation="get_by_id", index=index)
        response = self._call(
            "get_by_id",
            index,
            lambda client: client.get(index=index, id=identifier),
            f"GET {index}/_doc/{identifier}",
            missing={},
        )
        if not response:
            return {}
        body = getattr(response, "body", response)
        return dict(body.get("_source") or {})

    def delete(self, index: str, identifier: str) -> bool:
        """Delete a document. Returns False when it did not exist."""
        index = require_id(index, operation="delete")
        identifier = require_id(identifier, operation="delete", index=index)
        result = self._call(
            "delete",
            index,
            lambda client: client.delete(index=index, id=identifier),
            f"DELETE {index}/_doc/{identifier}",
            missing=False,
        )
        return result is not False

    def bulk_insert(self, index: str, documents: Sequence[Mapping[str, Any]]) -> bool:
        """Index many documents in one bulk request. Each needs an ``id``."""
        index = require_id(index, operation="bulk_insert")
        actions: List[Dict[str, Any]] = []
        for position, data in enumerate(documents):
            document = self._document(data, "bulk_insert")
            identifier = require_id(document.get("id"), operation="bulk_insert", index=index, position=position)
            actions.append({"_op_type": "index", "_index": index, "_id": identifier, "_source": document})
        if not actions:
            raise ValidationError("At least one document is required", operation="bulk_insert", index=index)
        success, _ = self._call(
            "bulk_insert",
            index,
            lambda client: helpers.bulk(client, actions),
            f"POST {index}/_bulk ({len(actions)} documents)",
        )
        return success == len(actions)

    def health_check(self) -> bool:
        """Ping the cluster. Unreachable or failing clusters report False."""
        try:
            return bool(
                self._call("health_check", _CLUSTER_NAMESPACE, lambda client: client.ping(), "HEAD /")
            )
        except CrossStoreError as e:
            self.logger.warning("Search cluster health check failed: %s", e)
            return False

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)
