# backend/todo_manager/db/compiler.py
"""
Translate the store-neutral query DSL (term / terms / range / exists /
multi_match / match_all / bool) into MongoDB filters and aggregation stages.
"""

import re
from typing import Any, Dict, List, Mapping, Tuple

from todo_manager.crud.query import BoolQuery

MISSING_KEY = "_missing"
SCORE_KEY = "_score"

_RANGE_OPERATORS = {"gt": "$gt", "gte": "$gte", "lt": "$lt", "lte": "$lte"}


class UnsupportedClauseError(ValueError):
    pass


def parse_field_boost(spec: str) -> Tuple[str, float]:
    """
    "title^2" -> ("title", 2.0); "description" -> ("description", 1.0)
    """
    name, _, boost = spec.partition("^")
    return name, float(boost) if boost else 1.0


def phrase_prefix_pattern(query: str) -> str:
    """
    Terms in order, separated by whitespace, the last one matched as a prefix.
    Each term must start on a word boundary.
    """
    tokens = query.split()
    return r"(?<!\w)" + r"\s+".join(re.escape(token) for token in tokens)


def _as_clause(query: Any) -> Mapping[str, Any]:
    if isinstance(query, BoolQuery):
        return query.to_dict()
    return query


def compile_filter(query: Any) -> Dict[str, Any]:
    clause = _as_clause(query)
    if not clause:
        return {}
    if len(clause) != 1:
        raise UnsupportedClauseError(f"Expected a single clause, got: {sorted(clause)}")

    kind, body = next(iter(clause.items()))

    if kind == "match_all":
        return {}

    if kind == "term":
        field, value = next(iter(body.items()))
        return {field: value}

    if kind == "terms":
        field, values = next(iter(body.items()))
        return {field: {"$in": list(values)}}

    if kind == "range":
        field, bounds = next(iter(body.items()))
        return {field: {_RANGE_OPERATORS[op]: value for op, value in bounds.items()}}

    if kind == "exists":
        return {body["field"]: {"$exists": True, "$ne": None}}

    if kind == "multi_match":
        pattern = phrase_prefix_pattern(body["query"])
        return {
            "$or": [
                {parse_field_boost(spec)[0]: {"$regex": pattern, "$options": "i"}}
                for spec in body["fields"]
            ]
        }

    if kind == "bool":
        parts = [compile_filter(c) for c in [*body.get("must", []), *body.get("filter", [])]]
        parts = [p for p in parts if p]
        if not parts:
            return {}
        if len(parts) == 1:
            return parts[0]
        return {"$and": parts}

    raise UnsupportedClauseError(f"Unsupported query clause: {kind}")


def score_expression(query: Any) -> Any:
    """
    Relevance score for the scored (must) clauses: each matching field adds
    its boost. Unscored queries get a constant score.
    """
    clause = _as_clause(query)
    must = clause.get("bool", {}).get("must", []) if "bool" in clause else [clause]

    terms: List[Any] = []
    for item in must:
        if "multi_match" not in item:
            continue
        body = item["multi_match"]
        pattern = phrase_prefix_pattern(body["query"])
        for spec in body["fields"]:
            name, boost = parse_field_boost(spec)
            terms.append(
                {
                    "$cond": [
                        {
                            "$regexMatch": {
                                "input": {"$ifNull": [f"${name}", ""]},
                                "regex": pattern,
                                "options": "i",
                            }
                        },
                        boost,
                        0,
                    ]
                }
            )

    if not terms:
        return {"$literal": 1.0}
    return {"$add": terms}


def sort_stages(query: Any, sort_field: str, sort_order: str) -> List[Dict[str, Any]]:
    """
    Sort stages for an aggregation pipeline.
    Documents without the sort field go last when ascending and first when
    descending; `_score` sorts by relevance. `_id` keeps paging stable.
    """
    direction = 1 if sort_order == "asc" else -1

    if sort_field == SCORE_KEY:
        return [
            {"$addFields": {SCORE_KEY: score_expression(query)}},
            {"$sort": {SCORE_KEY: direction, "_id": 1}},
        ]

    return [
        {
            "$addFields": {
                MISSING_KEY: {
                    "$cond": [{"$eq": [{"$ifNull": [f"${sort_field}", None]}, None]}, 1, 0]
                }
            }
        },
        {"$sort": {MISSING_KEY: direction, sort_field: direction, "_id": 1}},
    ]


def compile_aggregations(aggs: Mapping[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Named aggregations -> $facet sub-pipelines.
    - {"terms": {"field": f}}: one bucket per distinct value (array fields are unwound)
    - {"filter": clause}: document count matching the clause
    """
    facets: Dict[str, List[Dict[str, Any]]] = {}
    for name, agg in aggs.items():
        if "terms" in agg:
            field = agg["terms"]["field"]
            facets[name] = [
                {"$unwind": f"${field}"},
                {"$group": {"_id": f"${field}", "doc_count": {"$sum": 1}}},
                {"$sort": {"doc_count": -1, "_id": 1}},
            ]
        elif "filter" in agg:
            facets[name] = [
                {"$match": compile_filter(agg["filter"])},
                {"$count": "doc_count"},
            ]
        else:
            raise UnsupportedClauseError(f"Unsupported aggregation: {name}")
    return facets


def compile_update(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Partial update document: values are $set, None values are $unset.
    """
    to_set = {k: v for k, v in fields.items() if v is not None}
    to_unset = {k: "" for k, v in fields.items() if v is None}
    update: Dict[str, Any] = {}
    if to_set:
        update["$set"] = to_set
    if to_unset:
        update["$unset"] = to_unset
    return update
