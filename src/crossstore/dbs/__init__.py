"""Operation façades, one per backend."""

from .cassandra import CassandraOperations
from .elasticsearch import SearchOperations

__all__ = ("CassandraOperations", "SearchOperations")
