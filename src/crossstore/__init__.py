"""
This __init__.py file makes the crossstore directory a Python package
and exposes the main `DataAccessEngine`, the operation façades and the
schema classes for easy access.
"""

from .dbs import CassandraOperations, SearchOperations
from .engine import DataAccessEngine
from .schema import BatchItem, Facet, FacetValue, KeyedUpdate, KeySchema, OperationResponse, SearchRequest
from .types import CompositeKey, FilterMap, RecordKey

__version__ = "0.2.0"

__all__ = [
    "DataAccessEngine",
    "CassandraOperations",
    "SearchOperations",
    "SearchRequest",
    "OperationResponse",
    "Facet",
    "FacetValue",
    "KeySchema",
    "BatchItem",
    "KeyedUpdate",
    "RecordKey",
    "CompositeKey",
    "FilterMap",
]
