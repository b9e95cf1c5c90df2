# backend/todo_manager/crud/query.py

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from todo_manager.core.constants import TEXT_SEARCH_BOOSTS
from todo_manager.schemas.todo import TodoSearchParams

Clause = Dict[str, Any]

MATCH_ALL: Clause = {"match_all": {}}


@dataclass(frozen=True)
class BoolQuery:
    """
    Store-neutral boolean query.
    - must: relevance-scored clauses (full-text)
    - filter: exact / range clauses, not scored
    """
    must: List[Clause] = field(default_factory=list)
    filter: List[Clause] = field(default_factory=list)

    def to_dict(self) -> Clause:
        # An empty must list would leave nothing to score against
        return {
            "bool": {
                "must": list(self.must) or [MATCH_ALL],
                "filter": list(self.filter),
            }
        }


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def term(field_name: str, value: Any) -> List[Clause]:
    if _is_blank(value):
        return []
    return [{"term": {field_name: value}}]


def terms(field_name: str, values: Optional[Iterable[Any]]) -> List[Clause]:
    values = list(values or [])
    if not values:
        return []
    return [{"terms": {field_name: values}}]


def date_range(field_name: str, gte: Any = None, lte: Any = None) -> List[Clause]:
    bounds = {}
    if gte is not None:
        bounds["gte"] = gte
    if lte is not None:
        bounds["lte"] = lte
    if not bounds:
        return []
    return [{"range": {field_name: bounds}}]


def exists(field_name: str) -> List[Clause]:
    return [{"exists": {"field": field_name}}]


def phrase_prefix(query: Optional[str], boosts: Mapping[str, float]) -> List[Clause]:
    """
    Case-normalized phrase-prefix match across several fields.
    Blank / whitespace-only input produces no clause.
    """
    if not query or not query.strip():
        return []
    fields = [f"{name}^{boost}" if boost and boost != 1 else name for name, boost in boosts.items()]
    return [
        {
            "multi_match": {
                "query": query.strip().lower(),
                "fields": fields,
                "type": "phrase_prefix",
            }
        }
    ]


def build_search_query(params: TodoSearchParams) -> BoolQuery:
    """
    TodoSearchParams -> BoolQuery.
    Every absent/empty input contributes nothing; this never raises.
    """
    must = phrase_prefix(params.query, TEXT_SEARCH_BOOSTS)
    filters = [
        *term("archived", params.archived),
        *term("assignee", params.assignee),
        *terms("status", params.status),
        *terms("priority", params.priority),
        *terms("tags", params.tags),
        *terms("complianceStandards", params.compliance_standards),
        *date_range("createdAt", params.date_from, params.date_to),
    ]
    return BoolQuery(must=must, filter=filters)

