"""Pydantic schemas for requests and responses."""

from collections.abc import Mapping
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .constants import DEFAULT_KEY_COLUMN, SUCCESS
from .exceptions import FilterTypeError, InvalidKeyError, ValidationError
from .querydsl.filters import classify_filters
from .settings import settings
from .utils import is_blank


def _wrap_validation_error(model: str, exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())) or None
    return ValidationError(
        f"Invalid {model}: {first.get('msg', str(exc))}",
        field=field,
        errors=len(exc.errors()),
    )


class SearchRequest(BaseModel):
    """Declarative request against the search index.

    Accepts both snake_case names and the camelCase wire keys
    (``queryFields``, ``notExists``, ``nestedFilters``, ``sortBy``...).
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    query: Optional[str] = Field(None, description="Free-text query.")
    query_fields: List[str] = Field(default_factory=list, alias="queryFields")
    filters: Optional[Dict[str, Any]] = Field(None, description="Field -> scalar | list | operator map.")
    nested_filters: Dict[str, Any] = Field(default_factory=dict, alias="nestedFilters")
    exists: List[str] = Field(default_factory=list)
    not_exists: List[str] = Field(default_factory=list, alias="notExists")
    nested_exists: Dict[str, str] = Field(default_factory=dict, alias="nestedExists")
    nested_not_exists: Dict[str, str] = Field(default_factory=dict, alias="nestedNotExists")
    facets: Dict[str, Optional[str]] = Field(default_factory=dict)
    sort_by: Dict[str, str] = Field(default_factory=dict, alias="sortBy")
    soft_constraints: Dict[str, int] = Field(default_factory=dict, alias="softConstraints")
    fuzzy: Dict[str, str] = Field(default_factory=dict)
    fields: Optional[List[str]] = Field(None, description="Source projection.")
    offset: Optional[StrictInt] = Field(None, description="Hits to skip; None leaves the backend default.")
    limit: Optional[StrictInt] = Field(None, description="Page size; None means SEARCH_DEFAULT_LIMIT.")

    @field_validator("filters", "nested_filters", mode="before")
    @classmethod
    def check_filter_container(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            if info.field_name == "nested_filters":
                return {}
            return None
        if not isinstance(value, Mapping):
            raise FilterTypeError("Filters must be a mapping", field=info.field_name, got=type(value).__name__)
        if not value and info.field_name == "filters":
            raise FilterTypeError("Filters must not be empty when supplied", field=info.field_name)
        # Surface bad values before any compilation happens
        classify_filters(value)
        return dict(value)

    @field_validator("offset")
    @classmethod
    def check_offset(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValidationError("offset must be >= 0", field="offset", value=value)
        return value

    @field_validator("limit")
    @classmethod
    def check_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is None:
            return value
        if value <= 0:
            raise ValidationError("limit must be > 0", field="limit", value=value)
        if value > settings.SEARCH_MAX_LIMIT:
            raise ValidationError(
                "limit exceeds maximum", field="limit", value=value, maximum=settings.SEARCH_MAX_LIMIT
            )
        return value

    @property
    def effective_limit(self) -> int:
        return self.limit if self.limit is not None else settings.SEARCH_DEFAULT_LIMIT

    @classmethod
    def from_dict(cls, data: Any) -> "SearchRequest":
        """Build a request from a plain mapping, raising only CrossStore errors."""
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise ValidationError("Search request must be a mapping", got=type(data).__name__)
        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise _wrap_validation_error("search request", exc) from exc


class FacetValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Any
    count: int


class Facet(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    values: List[FacetValue] = Field(default_factory=list)


class OperationResponse(BaseModel):
    """Uniform envelope returned by every read operation."""

    model_config = ConfigDict(frozen=True)

    records: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    facets: Optional[List[Facet]] = None
    status: str = SUCCESS

    @model_validator(mode="after")
    def check_count(self) -> "OperationResponse":
        if self.count < 0:
            raise ValidationError("count must be >= 0", count=self.count)
        return self

    @classmethod
    def success(cls) -> "OperationResponse":
        return cls()


class KeySchema(BaseModel):
    """Ordered primary key layout of one table."""

    model_config = ConfigDict(frozen=True)

    partition_keys: Tuple[str, ...] = Field(default=(DEFAULT_KEY_COLUMN,), min_length=1)
    clustering_keys: Tuple[str, ...] = ()

    @property
    def key_columns(self) -> Tuple[str, ...]:
        return self.partition_keys + self.clustering_keys

    def split(self, record: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Split a flat record into (key columns, remaining columns).

        Raises:
            InvalidKeyError: if any key column is missing or blank
        """
        key: Dict[str, Any] = {}
        for column in self.key_columns:
            if column not in record or is_blank(record[column]):
                raise InvalidKeyError("Record is missing a key column", column=column)
            key[column] = record[column]
        values = {k: v for k, v in record.items() if k not in key}
        return key, values


class BatchItem(BaseModel):
    """One entry of a heterogeneous batch."""

    action: Literal["insert", "update"]
    record: Dict[str, Any]
    ttl: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "BatchItem":
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise _wrap_validation_error("batch item", exc) from exc


class KeyedUpdate(BaseModel):
    """Explicit (key, values) pair for batch updates."""

    model_config = ConfigDict(populate_by_name=True)

    key: Dict[str, Any] = Field(alias="primaryKey")
    columns: Dict[str, Any] = Field(alias="nonPrimaryKey")

    @classmethod
    def from_dict(cls, data: Any) -> "KeyedUpdate":
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise _wrap_validation_error("keyed update", exc) from exc
