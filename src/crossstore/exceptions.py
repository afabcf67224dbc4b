"""Custom exceptions for CrossStore library.

Every failure surfaced by the operation façades is one of these types. Each
class carries a `kind` (``"client"`` for caller mistakes, ``"server"`` for
backend or infrastructure failures) and the matching `status_code`, so a
caller can map either store's failures onto one outcome without inspecting
driver exceptions.
"""

from typing import Any, Dict

CLIENT_ERROR = "client"
SERVER_ERROR = "server"


# Base exception
class CrossStoreError(Exception):
    """Base exception for all CrossStore errors.

    Attributes:
        message: Error message
        details: Additional error context as key-value pairs
    """

    kind: str = SERVER_ERROR
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        """Initialize exception with message and additional details.

        Args:
            message: Human-readable error message
            **kwargs: Additional context (e.g., operation, keyspace, table, field)
        """
        self.message = message
        self.details: Dict[str, Any] = kwargs
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the complete error message with details."""
        if not self.details:
            return self.message

        details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        if self.message:
            return f"{self.message} ({details_str})"
        return details_str

    def with_context(self, **kwargs: Any) -> "CrossStoreError":
        """Attach context that was unknown where the error was raised.

        Keys already present are left untouched.
        """
        for key, value in kwargs.items():
            self.details.setdefault(key, value)
        self.args = (self._format_message(),)
        return self

    def __repr__(self) -> str:
        """Return detailed representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# Validation exceptions
class ValidationError(CrossStoreError):
    """Raised when a request is malformed. Never reaches a backend.

    Example:
        >>> raise ValidationError("limit must be positive", field="limit", value=0)
    """

    kind = CLIENT_ERROR
    status_code = 400


class InvalidKeyError(ValidationError):
    """Raised when a record key is blank, empty or incomplete.

    Example:
        >>> raise InvalidKeyError("Record id must not be blank", table="users")
    """


class InvalidFilterError(ValidationError):
    """Raised when a filter value cannot be compiled.

    Example:
        >>> raise InvalidFilterError("Unknown operator", field="age", operator="!=")
    """


class FilterTypeError(InvalidFilterError):
    """Raised when the filter container itself has the wrong shape.

    Example:
        >>> raise FilterTypeError("filters must not be empty when supplied")
    """


class MissingTTLAliasError(ValidationError):
    """Raised when a TTL field is requested without an output alias.

    Example:
        >>> raise MissingTTLAliasError("TTL alias is blank", field="token")
    """


class InvalidPropertyError(CrossStoreError):
    """Raised when the backend rejects a field name (schema mismatch).

    Example:
        >>> raise InvalidPropertyError("Unknown property 'nmae'", field="nmae")
    """

    kind = CLIENT_ERROR
    status_code = 400


# Execution exceptions
class ExecutionError(CrossStoreError):
    """Raised when a backend call fails for any reason other than a schema mismatch.

    Example:
        >>> raise ExecutionError("Write failed", operation="insert_record", keyspace="app", table="users")
    """


class QueryTimeoutError(ExecutionError):
    """Raised when a backend call exceeds its time budget.

    Example:
        >>> raise QueryTimeoutError("Search timed out", operation="search", index="people", timeout=5.0)
    """

    retryable = True


# Configuration exceptions
class ConfigurationError(CrossStoreError):
    """Raised when configuration is invalid or missing.

    Example:
        >>> raise ConfigurationError("No hosts configured", config_key="CASSANDRA_HOSTS")
    """


# Connection exceptions
class ConnectionError(CrossStoreError):
    """Raised when a backend connection fails.

    Example:
        >>> raise ConnectionError("Cluster unreachable", backend="cassandra", hosts=["10.0.0.1"])
    """


class SessionUnavailableError(ConnectionError):
    """Raised when a session or client handle cannot be obtained for a namespace.

    Example:
        >>> raise SessionUnavailableError("No session", backend="cassandra", keyspace="app")
    """
