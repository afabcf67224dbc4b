"""Session and client providers.

A provider owns the live driver handles for one backend and hands out one
handle per namespace (Cassandra keyspace, Elasticsearch index). Handles are
created lazily on first use and reused by every later caller; creation is
guarded by a double-checked lock so concurrent first calls build exactly one
handle.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra.query import dict_factory
from elasticsearch import Elasticsearch

from .exceptions import ConfigurationError, SessionUnavailableError
from .logger import Logger
from .settings import CrossStoreSettings
from .settings import settings as api_settings
from .utils import validate_identifier


class HandleProvider(ABC):
    """One lazily created handle per namespace, safe for concurrent reuse."""

    backend: str = ""

    def __init__(self) -> None:
        self._handles: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._closed = False
        self.logger = Logger(self.__class__.__name__)

    def get(self, namespace: str) -> Any:
        """Return the handle for `namespace`, creating it on first use.

        Raises:
            SessionUnavailableError: if the provider is closed or the handle
                cannot be built
        """
        handle = self._handles.get(namespace)
        if handle is not None:
            return handle
        with self._lock:
            if self._closed:
                raise SessionUnavailableError("Provider is closed", backend=self.backend, namespace=namespace)
            handle = self._handles.get(namespace)
            if handle is None:
                handle = self._create(namespace)
                self._handles[namespace] = handle
                self.logger.message("%s handle ready for namespace '%s'.", self.backend, namespace)
        return handle

    @property
    def namespaces(self) -> List[str]:
        return list(self._handles)

    @abstractmethod
    def _create(self, namespace: str) -> Any:
        """Build a new handle. Called with the lock held."""
        raise NotImplementedError

    @abstractmethod
    def _shutdown(self) -> None:
        """Release backend resources. Called with the lock held."""
        raise NotImplementedError

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._shutdown()
            self._handles.clear()
            self._closed = True
        self.logger.message("%s provider closed.", self.backend)


class CassandraSessionProvider(HandleProvider):
    """One `Cluster`, one `Session` per keyspace.

    Args:
        config: settings to read hosts, credentials and consistency from
        cluster_factory: callable building the cluster from keyword
            arguments (``cassandra.cluster.Cluster`` by default)
    """

    backend = "cassandra"

    def __init__(
        self,
        config: Optional[CrossStoreSettings] = None,
        cluster_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        super().__init__()
        self.config = config or api_settings
        self._cluster_factory = cluster_factory or Cluster
        self._cluster: Any = None

    def _consistency_level(self) -> int:
        name = (self.config.CASSANDRA_CONSISTENCY_LEVEL or "").upper()
        try:
            return ConsistencyLevel.name_to_value[name]
        except KeyError as e:
            raise ConfigurationError(
                "Unknown consistency level",
                config_key="CASSANDRA_CONSISTENCY_LEVEL",
                value=self.config.CASSANDRA_CONSISTENCY_LEVEL,
            ) from e

    def cluster_params(self) -> Dict[str, Any]:
        if not self.config.CASSANDRA_HOSTS:
            raise ConfigurationError("CASSANDRA_HOSTS is empty", config_key="CASSANDRA_HOSTS")
        policy = TokenAwarePolicy(DCAwareRoundRobinPolicy(local_dc=self.config.CASSANDRA_LOCAL_DC))
        profile = ExecutionProfile(
            load_balancing_policy=policy,
            consistency_level=self._consistency_level(),
            row_factory=dict_factory,
        )
        params: Dict[str, Any] = {
            "contact_points": list(self.config.CASSANDRA_HOSTS),
            "port": self.config.CASSANDRA_PORT,
            "execution_profiles": {EXEC_PROFILE_DEFAULT: profile},
        }
        if self.config.CASSANDRA_USERNAME:
            params["auth_provider"] = PlainTextAuthProvider(
                username=self.config.CASSANDRA_USERNAME,
                password=self.config.CASSANDRA_PASSWORD or "",
            )
        return params

    def _create(self, namespace: str) -> Any:
        keyspace = validate_identifier(namespace, "keyspace")
        if self._cluster is None:
            self._cluster = self._cluster_factory(**self.cluster_params())
        try:
            return self._cluster.connect(keyspace)
        except NoHostAvailable as e:
            raise SessionUnavailableError(
                "No Cassandra host available",
                backend=self.backend,
                keyspace=keyspace,
                hosts=list(self.config.CASSANDRA_HOSTS),
                original_error=str(e),
            ) from e
        except Exception as e:
            raise SessionUnavailableError(
                "Could not open Cassandra session",
                backend=self.backend,
                keyspace=keyspace,
                original_error=str(e),
            ) from e

    def _shutdown(self) -> None:
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None


class ElasticsearchClientProvider(HandleProvider):
    """One `Elasticsearch` client shared by every index namespace.

    Args:
        config: settings to read hosts and credentials from
        client_factory: callable building the client from keyword arguments
            (``elasticsearch.Elasticsearch`` by default)
    """

    backend = "elasticsearch"

    def __init__(
        self,
        config: Optional[CrossStoreSettings] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        super().__init__()
        self.config = config or api_settings
        self._client_factory = client_factory or Elasticsearch
        self._client: Any = None

    def client_params(self) -> Dict[str, Any]:
        if not self.config.ES_HOSTS:
            raise ConfigurationError("ES_HOSTS is empty", config_key="ES_HOSTS")
        params: Dict[str, Any] = {"hosts": list(self.config.ES_HOSTS)}
        if self.config.ES_API_KEY:
            params["api_key"] = self.config.ES_API_KEY
        elif self.config.ES_USERNAME:
            params["basic_auth"] = (self.config.ES_USERNAME, self.config.ES_PASSWORD or "")
        return params

    def _create(self, namespace: str) -> Any:
        if self._client is None:
            params = self.client_params()
            try:
                self._client = self._client_factory(**params)
            except Exception as e:
                raise SessionUnavailableError(
                    "Could not create Elasticsearch client",
                    backend=self.backend,
                    hosts=list(self.config.ES_HOSTS),
                    original_error=str(e),
                ) from e
        return self._client

    def _shutdown(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
