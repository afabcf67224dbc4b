"""Result normalization.

Turns Cassandra result sets and Elasticsearch responses into the uniform
`OperationResponse` envelope.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .schema import Facet, FacetValue, OperationResponse
from .settings import settings as api_settings


def _body(response: Any) -> Mapping[str, Any]:
    # elasticsearch-py wraps responses in ObjectApiResponse; `.body` is the plain dict
    body = getattr(response, "body", response)
    return body if isinstance(body, Mapping) else {}


class ResultNormalizer:
    """Convert native results into `OperationResponse` objects.

    Args:
        column_mapping: physical column -> logical property name. Columns
            without an entry keep their physical name. Defaults to
            ``settings.COLUMN_MAPPING``.
    """

    def __init__(self, column_mapping: Optional[Mapping[str, str]] = None) -> None:
        self._column_mapping = dict(column_mapping if column_mapping is not None else api_settings.COLUMN_MAPPING)

    @property
    def column_mapping(self) -> Dict[str, str]:
        return dict(self._column_mapping)

    # ------------------------------------------------------------------
    # Column store
    # ------------------------------------------------------------------

    def _resolve_columns(self, columns: Sequence[str]) -> List[Tuple[str, str]]:
        # logical -> physical, resolved once for the whole result set
        return [(self._column_mapping.get(col, col), col) for col in columns]

    def records_from_rows(self, result: Any) -> List[Dict[str, Any]]:
        if result is None:
            return []
        rows = list(result)
        if not rows:
            return []
        columns: Optional[Sequence[str]] = getattr(result, "column_names", None)
        first = rows[0]
        if not columns:
            if isinstance(first, Mapping):
                columns = list(first.keys())
            elif hasattr(first, "_fields"):
                columns = list(first._fields)
            else:
                columns = []
        resolved = self._resolve_columns(columns)
        records: List[Dict[str, Any]] = []
        for row in rows:
            if isinstance(row, Mapping):
                records.append({logical: row.get(physical) for logical, physical in resolved})
            else:
                values = tuple(row)
                records.append({logical: values[i] for i, (logical, _) in enumerate(resolved) if i < len(values)})
        return records

    def from_rows(self, result: Any) -> OperationResponse:
        """Normalize a Cassandra result set (dict, named tuple or tuple rows)."""
        records = self.records_from_rows(result)
        return OperationResponse(records=records, count=len(records))

    # ------------------------------------------------------------------
    # Search index
    # ------------------------------------------------------------------

    @staticmethod
    def _total(hits: Mapping[str, Any], fallback: int) -> int:
        total = hits.get("total")
        if isinstance(total, Mapping):
            return int(total.get("value", fallback))
        if isinstance(total, int):
            return total
        return fallback

    @staticmethod
    def _facets(aggregations: Mapping[str, Any], requested: Iterable[str]) -> List[Facet]:
        facets: List[Facet] = []
        for name in requested:
            buckets = (aggregations.get(name) or {}).get("buckets", [])
            values = [
                FacetValue(name=b.get("key_as_string", b.get("key")), count=b.get("doc_count", 0))
                for b in buckets
            ]
            facets.append(Facet(name=name, values=values))
        return facets

    def from_search(self, response: Any, facets: Optional[Mapping[str, Any]] = None) -> OperationResponse:
        """Normalize a search response.

        Each hit's ``_source`` becomes one record, unchanged. `count` is the
        total number of matches, not the page size. Facets follow the order
        of `facets` (the request's facet map).
        """
        body = _body(response)
        hits = body.get("hits") or {}
        records = [dict(hit.get("_source") or {}) for hit in hits.get("hits", [])]
        result_facets = None
        if facets:
            result_facets = self._facets(body.get("aggregations") or {}, facets.keys())
        return OperationResponse(
            records=records,
            count=self._total(hits, len(records)),
            facets=result_facets,
        )

    @staticmethod
    def documents_by_id(response: Any) -> Dict[str, Dict[str, Any]]:
        """Map ``_id`` -> ``_source`` for an ids search or an mget response."""
        body = _body(response)
        entries = body.get("docs")
        if entries is None:
            entries = (body.get("hits") or {}).get("hits", [])
        return {
            entry["_id"]: dict(entry.get("_source") or {})
            for entry in entries
            if entry.get("found", True) and "_id" in entry
        }
