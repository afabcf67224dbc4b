"""
Main engine wiring both stores together.

`DataAccessEngine` owns the session providers and exposes the two operation
façades: `records` for the column store and `search` for the search index.
Callers pick the backend by picking the façade; there is no cross-store
transaction or dispatch.
"""

from typing import Any, Mapping, Optional, Union

from .dbs.cassandra import CassandraOperations
from .dbs.elasticsearch import SearchOperations
from .logger import Logger
from .normalizer import ResultNormalizer
from .schema import KeySchema
from .sessions import CassandraSessionProvider, ElasticsearchClientProvider, HandleProvider
from .settings import CrossStoreSettings
from .settings import settings as api_settings


class DataAccessEngine:
    """Owner of providers and façades for both stores.

    Attributes:
        records: column-store operations (`CassandraOperations`)
        search: search-index operations (`SearchOperations`)
    """

    def __init__(
        self,
        config: Optional[CrossStoreSettings] = None,
        cassandra_provider: Optional[HandleProvider] = None,
        search_provider: Optional[HandleProvider] = None,
        key_schemas: Optional[Mapping[str, Union[KeySchema, Mapping[str, Any]]]] = None,
    ) -> None:
        """Build providers from settings unless given explicitly.

        Args:
            config: settings (module-level `settings` by default)
            cassandra_provider: session provider for the column store
            search_provider: client provider for the search index
            key_schemas: table -> key layout for update/batch operations
        """
        self.config = config or api_settings
        self.logger = Logger(self.__class__.__name__)
        self._cassandra_provider = cassandra_provider or CassandraSessionProvider(self.config)
        self._search_provider = search_provider or ElasticsearchClientProvider(self.config)
        normalizer = ResultNormalizer(self.config.COLUMN_MAPPING)
        self.records = CassandraOperations(
            self._cassandra_provider,
            normalizer=normalizer,
            key_schemas=key_schemas,
            async_pool_size=self.config.ASYNC_POOL_SIZE,
        )
        self.search = SearchOperations(
            self._search_provider,
            normalizer=normalizer,
            timeout=self.config.SEARCH_TIMEOUT_SECONDS,
            pool_size=self.config.SEARCH_POOL_SIZE,
        )
        self.logger.message(
            "DataAccessEngine initialized: cassandra=%s search=%s",
            self._cassandra_provider.__class__.__name__,
            self._search_provider.__class__.__name__,
        )

    @property
    def cassandra_provider(self) -> HandleProvider:
        return self._cassandra_provider

    @property
    def search_provider(self) -> HandleProvider:
        return self._search_provider

    def close(self) -> None:
        """Shut down worker pools and release every driver handle."""
        self.records.close()
        self.search.close()
        self._cassandra_provider.close()
        self._search_provider.close()
        self.logger.message("DataAccessEngine closed.")

    def __enter__(self) -> "DataAccessEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
