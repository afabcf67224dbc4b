from __future__ import annotations

import re
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from cassandra import InvalidRequest
from elasticsearch import NotFoundError

from crossstore.sessions import HandleProvider

_INSERT_RE = re.compile(r"^INSERT INTO (\w+)\.(\w+) \((.+?)\) VALUES \((.+?)\)(?: USING TTL (\d+))?$")
_SELECT_RE = re.compile(r"^SELECT (.+?) FROM (\w+)\.(\w+)(?: WHERE (.+))?$")
_UPDATE_RE = re.compile(r"^UPDATE (\w+)\.(\w+)(?: USING TTL (\d+))? SET (.+?) WHERE (.+)$")
_DELETE_RE = re.compile(r"^DELETE FROM (\w+)\.(\w+) WHERE (.+)$")
_TTL_RE = re.compile(r"^TTL\((\w+)\) AS (\w+)$")


class FakeResultSet:
    """Iterable rows plus `column_names`, like a dict_factory ResultSet."""

    def __init__(self, rows: List[Dict[str, Any]], column_names: Optional[List[str]] = None) -> None:
        self._rows = rows
        self.column_names = column_names

    def __iter__(self):
        return iter(self._rows)


class RecordingBatch:
    """Stand-in for BatchStatement that keeps (query, params) pairs."""

    def __init__(self, batch_type: Any = None) -> None:
        self.batch_type = batch_type
        self.entries: List[Tuple[str, Tuple[Any, ...]]] = []

    def add(self, statement: Any, parameters: Sequence[Any] = ()) -> None:
        self.entries.append((statement.query_string, tuple(parameters)))


class InMemoryCassandraSession:
    """Interprets the CQL subset produced by the statement compiler.

    Tables are keyed by their key columns (``id`` unless configured). When a
    table has declared columns, unknown columns fail the way Cassandra does.
    """

    def __init__(
        self,
        key_columns: Optional[Dict[str, List[str]]] = None,
        columns: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self.key_columns = key_columns or {}
        self.columns = columns or {}
        self.tables: Dict[str, Dict[Tuple[Any, ...], Dict[str, Any]]] = {}
        self.ttls: Dict[str, Dict[Tuple[Any, ...], Dict[str, int]]] = {}
        self.executed: List[Tuple[str, Tuple[Any, ...]]] = []
        self.batches: List[RecordingBatch] = []
        self.fail_with: Optional[BaseException] = None

    # -- helpers -------------------------------------------------------
    def _keys(self, table: str) -> List[str]:
        return self.key_columns.get(table, ["id"])

    def _check_columns(self, table: str, names: Iterable[str]) -> None:
        declared = self.columns.get(table)
        if declared is None:
            return
        for name in names:
            if name not in declared:
                raise InvalidRequest(f"Undefined column name {name}")

    def _where(self, clause: str, params: List[Any]) -> List[Tuple[str, str, Any]]:
        conditions = []
        for part in clause.split(" AND "):
            column, op, _ = part.split(" ", 2)
            conditions.append((column, op, params.pop(0)))
        return conditions

    @staticmethod
    def _matches(row: Dict[str, Any], conditions: List[Tuple[str, str, Any]]) -> bool:
        for column, op, value in conditions:
            current = row.get(column)
            if op == "=" and current != value:
                return False
            if op == "IN" and current not in list(value):
                return False
            if op == "CONTAINS" and (current is None or value not in current):
                return False
        return True

    # -- statements ----------------------------------------------------
    def _insert(self, m: re.Match, params: List[Any]) -> None:
        _, table, cols, _, ttl = m.groups()
        names = cols.split(", ")
        self._check_columns(table, names)
        row = dict(zip(names, params))
        key = tuple(row[k] for k in self._keys(table))
        self.tables.setdefault(table, {}).setdefault(key, {}).update(row)
        if ttl:
            self.ttls.setdefault(table, {}).setdefault(key, {}).update({n: int(ttl) for n in names})

    def _update(self, m: re.Match, params: List[Any]) -> None:
        _, table, ttl, set_clause, where = m.groups()
        assignments = set_clause.split(", ")
        set_params = [params.pop(0) for a in assignments for _ in range(a.count("%s"))]
        conditions = self._where(where, params)
        self._check_columns(table, [c for c, _, _ in conditions])
        key_cols = self._keys(table)
        rows = self.tables.setdefault(table, {})
        keys = [k for k, row in rows.items() if self._matches(row, conditions)]
        if not keys and all(op == "=" for _, op, _ in conditions):
            seed = {c: v for c, _, v in conditions}
            key = tuple(seed[k] for k in key_cols)
            rows[key] = seed
            keys = [key]
        for key in keys:
            row = rows[key]
            values = list(set_params)
            for assignment in assignments:
                if "[%s]" in assignment:
                    column = assignment.split("[", 1)[0]
                    map_key, map_value = values.pop(0), values.pop(0)
                    row.setdefault(column, {})
                    row[column] = dict(row[column] or {}, **{map_key: map_value})
                elif " - %s" in assignment:
                    column = assignment.split(" ", 1)[0]
                    removed = values.pop(0)
                    row[column] = {k: v for k, v in (row.get(column) or {}).items() if k not in removed}
                else:
                    column = assignment.split(" ", 1)[0]
                    self._check_columns(table, [column])
                    row[column] = values.pop(0)
                    if ttl:
                        self.ttls.setdefault(table, {}).setdefault(key, {})[column] = int(ttl)

    def _delete(self, m: re.Match, params: List[Any]) -> None:
        _, table, where = m.groups()
        conditions = self._where(where, params)
        rows = self.tables.setdefault(table, {})
        for key in [k for k, row in rows.items() if self._matches(row, conditions)]:
            del rows[key]

    def _select(self, m: re.Match, params: List[Any]) -> FakeResultSet:
        projection, _, table, where = m.groups()
        conditions = self._where(where, params) if where else []
        self._check_columns(table, [c for c, _, _ in conditions])
        rows = self.tables.get(table, {})
        ttls = self.ttls.get(table, {})
        matched = [(k, r) for k, r in rows.items() if self._matches(r, conditions)]
        if projection == "*":
            declared = self.columns.get(table)
            names = declared or sorted({c for _, r in matched for c in r})
            return FakeResultSet([{n: r.get(n) for n in names} for _, r in matched], list(names))
        out_names: List[str] = []
        getters = []
        for item in projection.split(", "):
            ttl_match = _TTL_RE.match(item)
            if ttl_match:
                column, alias = ttl_match.groups()
                self._check_columns(table, [column])
                out_names.append(alias)
                getters.append(lambda k, r, c=column: ttls.get(k, {}).get(c))
            else:
                self._check_columns(table, [item])
                out_names.append(item)
                getters.append(lambda k, r, c=item: r.get(c))
        result = [{n: g(k, r) for n, g in zip(out_names, getters)} for k, r in matched]
        return FakeResultSet(result, out_names)

    def execute(self, statement: Any, parameters: Sequence[Any] = ()) -> Any:
        if self.fail_with is not None:
            raise self.fail_with
        if isinstance(statement, RecordingBatch):
            self.batches.append(statement)
            for query, params in statement.entries:
                self._run(query, params)
            return FakeResultSet([])
        return self._run(statement.query_string, tuple(parameters or ()))

    def _run(self, query: str, params: Tuple[Any, ...]) -> Any:
        self.executed.append((query, params))
        remaining = list(params)
        for pattern, handler in (
            (_INSERT_RE, self._insert),
            (_UPDATE_RE, self._update),
            (_DELETE_RE, self._delete),
            (_SELECT_RE, self._select),
        ):
            m = pattern.match(query)
            if m:
                result = handler(m, remaining)
                return result if result is not None else FakeResultSet([])
        raise InvalidRequest(f"line 1:0 no viable alternative at input '{query}'")


class StaticProvider(HandleProvider):
    """Provider returning a fixed handle for every namespace."""

    backend = "static"

    def __init__(self, handle: Any) -> None:
        super().__init__()
        self.handle = handle
        self.created: List[str] = []
        self.shutdown_calls = 0

    def _create(self, namespace: str) -> Any:
        self.created.append(namespace)
        return self.handle

    def _shutdown(self) -> None:
        self.shutdown_calls += 1


# ---------------------------------------------------------------------------
# Search index
# ---------------------------------------------------------------------------


class _NotFoundMeta:
    status = 404


def not_found(message: str = "not_found") -> NotFoundError:
    return NotFoundError(message, _NotFoundMeta(), {"found": False})


class InMemoryElasticsearch:
    """Evaluates the query DSL subset produced by the search compiler."""

    def __init__(self, raw_suffix: str = ".raw") -> None:
        self.raw_suffix = raw_suffix
        self.indices: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False
        self.lock = threading.Lock()

    # -- documents -----------------------------------------------------
    def index(self, index: str, id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("index", {"index": index, "id": id}))
        self.indices.setdefault(index, {})[id] = dict(document)
        return {"_id": id, "result": "created"}

    def update(self, index: str, id: str, doc: Dict[str, Any], doc_as_upsert: bool = False) -> Dict[str, Any]:
        self.calls.append(("update", {"index": index, "id": id, "doc_as_upsert": doc_as_upsert}))
        docs = self.indices.setdefault(index, {})
        if id not in docs:
            if not doc_as_upsert:
                raise not_found(f"document_missing_exception [{id}]")
            docs[id] = {}
        docs[id].update(doc)
        return {"_id": id, "result": "updated"}

    def get(self, index: str, id: str) -> Dict[str, Any]:
        self.calls.append(("get", {"index": index, "id": id}))
        docs = self.indices.get(index, {})
        if id not in docs:
            raise not_found()
        return {"_id": id, "found": True, "_source": dict(docs[id])}

    def delete(self, index: str, id: str) -> Dict[str, Any]:
        self.calls.append(("delete", {"index": index, "id": id}))
        docs = self.indices.get(index, {})
        if id not in docs:
            raise not_found()
        del docs[id]
        return {"_id": id, "result": "deleted"}

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True

    # -- search --------------------------------------------------------
    def _values(self, doc: Dict[str, Any], field: str) -> List[Any]:
        raw = field.endswith(self.raw_suffix)
        if raw:
            field = field[: -len(self.raw_suffix)]
        current: List[Any] = [doc]
        for part in field.split("."):
            nxt: List[Any] = []
            for item in current:
                if isinstance(item, dict) and part in item:
                    value = item[part]
                    nxt.extend(value if isinstance(value, list) else [value])
            current = nxt
        if raw:
            current = [v.lower() if isinstance(v, str) else v for v in current]
        return current

    def _eval(self, doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        (kind, body), = query.items()
        if kind == "match_all":
            return True
        if kind == "bool":
            if not all(self._eval(doc, q) for q in body.get("must", [])):
                return False
            if any(self._eval(doc, q) for q in body.get("must_not", [])):
                return False
            should = body.get("should", [])
            if should and sum(self._eval(doc, q) for q in should) < body.get("minimum_should_match", 1):
                return False
            return True
        if kind == "nested":
            path = body["path"]
            items = doc.get(path)
            items = items if isinstance(items, list) else ([items] if items else [])
            return any(self._eval({path: item}, body["query"]) for item in items)
        if kind == "multi_match":
            needle = body["query"].lower()
            return any(isinstance(v, str) and needle in v.lower() for v in doc.values())
        if kind == "exists":
            return bool(self._values(doc, body["field"]))
        if kind == "ids":
            return doc.get("__id") in body["values"]
        (field, clause), = ((k, v) for k, v in body.items() if k != "boost")
        values = self._values(doc, field)
        if kind == "term":
            return clause["value"] in values
        if kind == "terms":
            return any(v in values for v in clause)
        if kind == "range":
            ops = {"gt": lambda a, b: a > b, "gte": lambda a, b: a >= b, "lt": lambda a, b: a < b, "lte": lambda a, b: a <= b}
            return any(all(ops[o](v, b) for o, b in clause.items() if o in ops) for v in values)
        if kind == "prefix":
            return any(isinstance(v, str) and v.startswith(clause["value"]) for v in values)
        if kind == "regexp":
            return any(isinstance(v, str) and re.fullmatch(clause["value"], v) for v in values)
        if kind == "match":
            return any(isinstance(v, str) and clause["query"].lower() in v.lower() for v in values)
        raise AssertionError(f"unsupported query {kind}")

    def search(self, index: str, query: Dict[str, Any], size: int = 10, from_: Optional[int] = None, sort=None, aggs=None, source=None, track_total_hits=None) -> Dict[str, Any]:
        self.calls.append(("search", {"index": index, "query": query, "size": size, "from_": from_, "sort": sort, "aggs": aggs, "source": source, "track_total_hits": track_total_hits}))
        docs = [dict(d, __id=i) for i, d in self.indices.get(index, {}).items()]
        matched = [d for d in docs if self._eval(d, query)]
        for entry in reversed(sort or []):
            (field, order), = entry.items()
            matched.sort(key=lambda d: (self._values(d, field) or [None])[0], reverse=order["order"] == "desc")
        start = from_ or 0
        page = matched[start : start + size]
        hits = []
        for d in page:
            ident = d.pop("__id")
            src = {k: v for k, v in d.items() if source is None or k in source}
            hits.append({"_id": ident, "_source": src})
        response: Dict[str, Any] = {"hits": {"total": {"value": len(matched), "relation": "eq"}, "hits": hits}}
        if aggs:
            response["aggregations"] = {}
            for name, agg in aggs.items():
                (kind, clause), = agg.items()
                counts: Dict[Any, int] = {}
                for d in matched:
                    for v in self._values(d, clause["field"]):
                        counts[v] = counts.get(v, 0) + 1
                buckets = [{"key": k, "doc_count": c} for k, c in sorted(counts.items(), key=lambda kv: -kv[1])]
                response["aggregations"][name] = {"buckets": buckets}
        return response
