"""Base compiler interface.

Defines the abstract contract both backend compilers follow.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

__all__ = ("BaseCompiler",)


class BaseCompiler(ABC):
    """Abstract base class for backend query compilers.

    Subclasses implement `to_where` and `to_expr` to produce backend-specific
    filter structures and a loggable rendering of them.
    """

    @abstractmethod
    def to_where(self, filters: Optional[Mapping[str, Any]]) -> Any:
        """
        Convert a filter map into the backend-native filter representation.
        - (clause, params) for Cassandra
        - list of bool clauses for Elasticsearch
        """
        raise NotImplementedError

    @abstractmethod
    def to_expr(self, compiled: Any) -> str:
        """Render a compiled query as a string for logging."""
        raise NotImplementedError
