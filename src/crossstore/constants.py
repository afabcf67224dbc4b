"""
Shared constants for the filter DSL and response envelopes.
"""


class FilterOperator:
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


RANGE_OPERATORS = {
    FilterOperator.LT: "lt",
    FilterOperator.LTE: "lte",
    FilterOperator.GT: "gt",
    FilterOperator.GTE: "gte",
}

LEXICAL_OPERATORS = (FilterOperator.STARTS_WITH, FilterOperator.ENDS_WITH)

# Operators that may not be combined on one field
CONFLICTING_OPERATORS = (
    (FilterOperator.GT, FilterOperator.GTE),
    (FilterOperator.LT, FilterOperator.LTE),
)

OR_KEY = "OR"
ASC = "ASC"


class FacetKind:
    TERMS = "terms"
    DATE_HISTOGRAM = "date_histogram"

    @classmethod
    def normalize(cls, kind) -> str:
        """Fold case and accept `date-histogram` as well as `date_histogram`."""
        return str(kind or cls.TERMS).strip().lower().replace("-", "_")


class BatchAction:
    INSERT = "insert"
    UPDATE = "update"


SUCCESS = "SUCCESS"
DEFAULT_KEY_COLUMN = "id"
TTL_ALIAS_SUFFIX = "_ttl"
