"""Elasticsearch query compiler.

Transforms a `SearchRequest` into a bool query tree plus aggregation, sort
and pagination controls, ready to be passed to ``Elasticsearch.search``.

Exact matching, ranges, prefixes, sorting and aggregations all target the
untokenized raw sub-field (``<field><RAW_FIELD_SUFFIX>``); string values are
lower-cased before matching.

Elasticsearch supports:
- Equality / membership: term, terms
- Range: gt, gte, lt, lte
- Lexical: prefix, regexp
- Nested documents: nested query with score_mode "none"
- Existence: exists (must / must_not)
- Free text: match / multi_match with AUTO fuzziness
- Aggregations: terms, date_histogram
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from crossstore.constants import ASC, FacetKind
from crossstore.querydsl.filters import (
    Filter,
    ListFilter,
    OperatorFilter,
    OrFilter,
    ScalarFilter,
    classify_filters,
)
from crossstore.schema import SearchRequest
from crossstore.settings import settings as api_settings

from .base import BaseCompiler
from .utils import escape_regexp, render_json, split_nested_path

__all__ = (
    "CompiledSearch",
    "SearchQueryCompiler",
    "search_compiler",
)


@dataclass(frozen=True)
class CompiledSearch:
    """A compiled search: query tree plus request controls."""

    query: Dict[str, Any]
    size: int
    from_: Optional[int] = None
    sort: List[Dict[str, Any]] = field(default_factory=list)
    aggs: Dict[str, Any] = field(default_factory=dict)
    source: Optional[List[str]] = None
    track_total_hits: bool = True
    operation: str = "search"

    def to_body(self) -> Dict[str, Any]:
        """Request body in REST form."""
        body: Dict[str, Any] = {"query": self.query, "size": self.size}
        if self.from_ is not None:
            body["from"] = self.from_
        if self.sort:
            body["sort"] = self.sort
        if self.aggs:
            body["aggs"] = self.aggs
        if self.source is not None:
            body["_source"] = self.source
        if self.track_total_hits:
            body["track_total_hits"] = True
        return body

    def to_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``Elasticsearch.search``."""
        kwargs: Dict[str, Any] = {"query": self.query, "size": self.size}
        if self.from_ is not None:
            kwargs["from_"] = self.from_
        if self.sort:
            kwargs["sort"] = self.sort
        if self.aggs:
            kwargs["aggs"] = self.aggs
        if self.source is not None:
            kwargs["source"] = self.source
        if self.track_total_hits:
            kwargs["track_total_hits"] = True
        return kwargs

    def to_expr(self) -> str:
        return render_json(self.to_body())


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _nested(path: str, clause: Dict[str, Any]) -> Dict[str, Any]:
    return {"nested": {"path": path, "query": clause, "score_mode": "none"}}


class SearchQueryCompiler(BaseCompiler):
    """Compile search requests into Elasticsearch query DSL.

    Capabilities:
    - SUPPORTS_NESTED: True (dotted field names become nested queries)
    - SUPPORTS_RANGE: True
    - SUPPORTS_OR: True (OR groups become should clauses)
    """

    SUPPORTS_NESTED = True
    SUPPORTS_RANGE = True
    SUPPORTS_OR = True

    def __init__(self, raw_suffix: Optional[str] = None) -> None:
        self._raw_suffix = raw_suffix

    @property
    def raw_suffix(self) -> str:
        return self._raw_suffix if self._raw_suffix is not None else api_settings.RAW_FIELD_SUFFIX

    def raw(self, name: str) -> str:
        return f"{name}{self.raw_suffix}"

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def to_where(
        self,
        filters: Optional[Mapping[str, Any]],
        boosts: Optional[Mapping[str, int]] = None,
        force_nested: bool = False,
    ) -> List[Dict[str, Any]]:
        """Convert a filter map into a list of mandatory clauses.

        Args:
            filters: field -> scalar | list | operator map; ``OR`` holds a group
            boosts: soft constraints (field -> boost)
            force_nested: treat every field as ``path.field``
        """
        boosts = boosts or {}
        clauses: List[Dict[str, Any]] = []
        for flt in classify_filters(filters):
            if isinstance(flt, OrFilter):
                clauses.append(self._or_clause(flt))
                continue
            produced = self._filter_clauses(flt, boosts.get(flt.field))
            if "." in flt.field or force_nested:
                path, _ = split_nested_path(flt.field)
                produced = [_nested(path, c) for c in produced]
            clauses.extend(produced)
        return clauses

    def to_expr(self, compiled: Any) -> str:
        return compiled.to_expr()

    def _filter_clauses(self, flt: Filter, boost: Optional[int]) -> List[Dict[str, Any]]:
        raw = self.raw(flt.field)
        if isinstance(flt, ScalarFilter):
            return [self._term(raw, _lower(flt.value), boost)]
        if isinstance(flt, ListFilter):
            return [self._terms(raw, [_lower(v) for v in flt.values], boost)]
        out: List[Dict[str, Any]] = []
        if flt.ranges:
            out.append(self._range(raw, flt.ranges, boost))
        if flt.has_lexical:
            out.append(self._lexical(raw, flt, boost))
        return out

    def _or_clause(self, flt: OrFilter) -> Dict[str, Any]:
        should = []
        for member in flt.members:
            if isinstance(member, ListFilter):
                should.append(self._terms(self.raw(member.field), [_lower(v) for v in member.values], None))
            else:
                should.append(self._term(self.raw(member.field), _lower(member.value), None))
        return {"bool": {"should": should, "minimum_should_match": 1}}

    @staticmethod
    def _term(name: str, value: Any, boost: Optional[int]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"value": value}
        if boost is not None:
            body["boost"] = boost
        return {"term": {name: body}}

    @staticmethod
    def _terms(name: str, values: List[Any], boost: Optional[int]) -> Dict[str, Any]:
        body: Dict[str, Any] = {name: values}
        if boost is not None:
            body["boost"] = boost
        return {"terms": body}

    @staticmethod
    def _range(name: str, ranges: Mapping[str, Any], boost: Optional[int]) -> Dict[str, Any]:
        body = dict(ranges)
        if boost is not None:
            body["boost"] = boost
        return {"range": {name: body}}

    @staticmethod
    def _lexical(name: str, flt: OperatorFilter, boost: Optional[int]) -> Dict[str, Any]:
        # One clause per field: prefix alone, suffix alone, or both anchored in a single pattern
        if flt.ends_with is None:
            kind, body = "prefix", {"value": flt.starts_with.lower()}
        else:
            head = escape_regexp(flt.starts_with.lower()) if flt.starts_with is not None else ""
            kind, body = "regexp", {"value": f"{head}.*{escape_regexp(flt.ends_with.lower())}"}
        if boost is not None:
            body["boost"] = boost
        return {kind: {name: body}}

    # ------------------------------------------------------------------
    # Other clause families
    # ------------------------------------------------------------------

    @staticmethod
    def _exists(name: str, boost: Optional[int]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"field": name}
        if boost is not None:
            body["boost"] = boost
        return {"exists": body}

    @staticmethod
    def _fuzzy_match(name: str, text: str, boost: Optional[int] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": text, "fuzziness": "AUTO", "fuzzy_transpositions": True}
        if boost is not None:
            body["boost"] = boost
        return {"match": {name: body}}

    def _text_clause(self, request: SearchRequest) -> Optional[Dict[str, Any]]:
        if not request.query:
            return None
        boosts = request.soft_constraints
        if not request.query_fields:
            return {
                "multi_match": {
                    "query": request.query,
                    "fields": ["*"],
                    "fuzziness": "AUTO",
                    "fuzzy_transpositions": True,
                    "lenient": True,
                }
            }
        matches = [self._fuzzy_match(f, request.query, boosts.get(f)) for f in request.query_fields]
        if len(matches) == 1:
            return matches[0]
        return {"bool": {"should": matches, "minimum_should_match": 1}}

    def _aggregations(self, facets: Mapping[str, Optional[str]]) -> Dict[str, Any]:
        aggs: Dict[str, Any] = {}
        for name, kind in facets.items():
            if FacetKind.normalize(kind) == FacetKind.DATE_HISTOGRAM:
                aggs[name] = {"date_histogram": {"field": self.raw(name), "calendar_interval": "1d"}}
            else:
                aggs[name] = {"terms": {"field": self.raw(name)}}
        return aggs

    def _sort(self, sort_by: Mapping[str, str]) -> List[Dict[str, Any]]:
        return [
            {self.raw(name): {"order": "asc" if str(direction or "").upper() == ASC else "desc"}}
            for name, direction in sort_by.items()
        ]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def compile(self, request: Any) -> CompiledSearch:
        """Compile a `SearchRequest` (or a mapping accepted by it)."""
        request = SearchRequest.from_dict(request)
        boosts = request.soft_constraints
        must: List[Dict[str, Any]] = []
        must_not: List[Dict[str, Any]] = []

        text = self._text_clause(request)
        if text is not None:
            must.append(text)
        for name, value in request.fuzzy.items():
            must.append(self._fuzzy_match(name, value, boosts.get(name)))

        must.extend(self.to_where(request.filters, boosts))
        must.extend(self.to_where(request.nested_filters, boosts, force_nested=True))

        for name in request.exists:
            must.append(self._exists(name, boosts.get(name)))
        for name in request.not_exists:
            must_not.append(self._exists(name, boosts.get(name)))
        for name, path in request.nested_exists.items():
            must.append(_nested(path, self._exists(name, boosts.get(name))))
        for name, path in request.nested_not_exists.items():
            must_not.append(_nested(path, self._exists(name, boosts.get(name))))

        if must or must_not:
            bool_query: Dict[str, Any] = {}
            if must:
                bool_query["must"] = must
            if must_not:
                bool_query["must_not"] = must_not
            query: Dict[str, Any] = {"bool": bool_query}
        else:
            query = {"match_all": {}}

        return CompiledSearch(
            query=query,
            size=request.effective_limit,
            from_=request.offset,
            sort=self._sort(request.sort_by),
            aggs=self._aggregations(request.facets),
            source=list(request.fields) if request.fields is not None else None,
        )


search_compiler = SearchQueryCompiler()
