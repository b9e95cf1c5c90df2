from __future__ import annotations

import copy
import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from todo_manager.api import deps
from todo_manager.crud.query import BoolQuery
from todo_manager.crud.todos import TodoService
from todo_manager.db.compiler import parse_field_boost, phrase_prefix_pattern
from todo_manager.main import app

_RANGE_CHECKS = {
    "gt": lambda value, bound: value > bound,
    "gte": lambda value, bound: value >= bound,
    "lt": lambda value, bound: value < bound,
    "lte": lambda value, bound: value <= bound,
}


def _clause(query):
    return query.to_dict() if isinstance(query, BoolQuery) else query


def matches(doc: dict, clause: dict) -> bool:
    kind, body = next(iter(clause.items()))

    if kind == "match_all":
        return True
    if kind == "bool":
        return all(matches(doc, c) for c in [*body.get("must", []), *body.get("filter", [])])
    if kind == "exists":
        return doc.get(body["field"]) is not None
    if kind == "multi_match":
        pattern = phrase_prefix_pattern(body["query"])
        return any(
            re.search(pattern, doc.get(parse_field_boost(spec)[0]) or "", re.IGNORECASE)
            for spec in body["fields"]
        )

    field, expected = next(iter(body.items()))
    value = doc.get(field)
    if kind == "term":
        return expected in value if isinstance(value, list) else value == expected
    if kind == "terms":
        if isinstance(value, list):
            return any(v in expected for v in value)
        return value in expected
    if kind == "range":
        if value is None:
            return False
        return all(_RANGE_CHECKS[op](value, bound) for op, bound in expected.items())
    raise AssertionError(f"unexpected clause {kind}")


def score(doc: dict, clause: dict) -> float:
    total = 0.0
    for item in clause.get("bool", {}).get("must", []):
        if "multi_match" not in item:
            continue
        pattern = phrase_prefix_pattern(item["multi_match"]["query"])
        for spec in item["multi_match"]["fields"]:
            name, boost = parse_field_boost(spec)
            if re.search(pattern, doc.get(name) or "", re.IGNORECASE):
                total += boost
    return total


class FakeTodoStore:
    """
    In-memory stand-in for TodoStore that evaluates the same query DSL.
    Ids in `fail_ids` fail inside bulk batches.
    """

    name = "todo_items"

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.fail_ids: set[str] = set()
        self.ensured = False

    async def ensure_index(self):
        self.ensured = True

    async def ping(self):
        return None

    async def index(self, doc):
        self.docs[doc["id"]] = copy.deepcopy(dict(doc))

    async def get(self, doc_id):
        doc = self.docs.get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, doc_id, fields):
        if doc_id not in self.docs:
            return False
        self._apply(self.docs[doc_id], fields)
        return True

    async def delete(self, doc_id):
        return self.docs.pop(doc_id, None) is not None

    @staticmethod
    def _apply(doc, fields):
        for key, value in fields.items():
            if value is None:
                doc.pop(key, None)
            else:
                doc[key] = copy.deepcopy(value)

    async def bulk(self, actions):
        items = []
        for action in actions:
            op, doc_id = action["op"], action["id"]
            if doc_id in self.fail_ids:
                items.append({op: {"_id": doc_id, "status": 400, "error": {"type": "write_error", "reason": "simulated failure"}}})
                continue
            if op in ("update", "delete") and doc_id not in self.docs:
                items.append({op: {"_id": doc_id, "status": 404, "error": {"type": "document_missing_exception", "reason": f"[{doc_id}]: document missing"}}})
                continue
            if op == "index":
                self.docs[doc_id] = copy.deepcopy({**action["doc"], "id": doc_id})
            elif op == "update":
                self._apply(self.docs[doc_id], action["doc"])
            else:
                del self.docs[doc_id]
            items.append({op: {"_id": doc_id, "status": 200}})
        return {"errors": any("error" in next(iter(i.values())) for i in items), "items": items}

    async def search(self, query, sort_field, sort_order, offset, size):
        clause = _clause(query)
        hits = [doc for doc in self.docs.values() if matches(doc, clause)]
        descending = sort_order == "desc"

        if sort_field == "_score":
            hits.sort(key=lambda d: score(d, clause), reverse=descending)
        else:
            present = [d for d in hits if d.get(sort_field) is not None]
            missing = [d for d in hits if d.get(sort_field) is None]
            present.sort(key=lambda d: d[sort_field], reverse=descending)
            hits = missing + present if descending else present + missing

        return copy.deepcopy(hits[offset:offset + size]), len(hits)

    async def aggregate(self, query, aggs):
        hits = [doc for doc in self.docs.values() if matches(doc, _clause(query))]
        aggregations = {}
        for name, agg in aggs.items():
            if "terms" in agg:
                counts: dict = {}
                for doc in hits:
                    value = doc.get(agg["terms"]["field"])
                    for key in value if isinstance(value, list) else [value]:
                        if key is not None:
                            counts[key] = counts.get(key, 0) + 1
                aggregations[name] = {
                    "buckets": [{"key": k, "doc_count": c} for k, c in counts.items()]
                }
            else:
                aggregations[name] = {"doc_count": sum(1 for d in hits if matches(d, agg["filter"]))}
        return {"total": len(hits), "aggregations": aggregations}

    async def delete_by_query(self, query):
        doomed = [doc_id for doc_id, doc in self.docs.items() if matches(doc, _clause(query))]
        for doc_id in doomed:
            del self.docs[doc_id]
        return len(doomed)


class FakeClock:
    """Strictly increasing clock, one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def fake_store() -> FakeTodoStore:
    return FakeTodoStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(fake_store, clock) -> TodoService:
    return TodoService(fake_store, clock=clock)


@pytest.fixture
def client(fake_store, service):
    app.dependency_overrides[deps.get_todo_service] = lambda: service
    app.dependency_overrides[deps.get_todo_store] = lambda: fake_store
    try:
        # no context manager: the lifespan (real MongoDB) is not started
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
