# backend/todo_manager/db/store.py

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, DeleteOne, IndexModel, InsertOne, UpdateOne
from pymongo.errors import BulkWriteError, CollectionInvalid

from todo_manager.db.compiler import (
    MISSING_KEY,
    SCORE_KEY,
    compile_aggregations,
    compile_filter,
    compile_update,
    sort_stages,
)

logger = logging.getLogger(__name__)

_KEYWORD = {"bsonType": ["string", "null"]}
_TEXT = {"bsonType": ["string", "null"]}
_DATE = {"bsonType": ["date", "null"]}
_NUMBER = {"bsonType": ["double", "int", "long", "decimal", "null"]}
_KEYWORD_LIST = {"bsonType": ["array", "null"], "items": {"bsonType": "string"}}

# Field-type template for the TODO collection
TODO_SCHEMA = {
    "bsonType": "object",
    "required": ["id", "title", "status", "priority", "archived", "createdAt", "updatedAt"],
    "properties": {
        "id": {"bsonType": "string"},
        "title": {"bsonType": "string"},
        "description": _TEXT,
        "status": {"bsonType": "string"},
        "priority": {"bsonType": "string"},
        "tags": _KEYWORD_LIST,
        "complianceStandards": _KEYWORD_LIST,
        "assignee": _KEYWORD,
        "createdAt": {"bsonType": "date"},
        "updatedAt": {"bsonType": "date"},
        "plannedDate": _DATE,
        "dueDate": _DATE,
        "completedAt": _DATE,
        "archivedAt": _DATE,
        "errorDetails": _TEXT,
        "archived": {"bsonType": "bool"},
        "storyPoints": _NUMBER,
        "coverImage": _KEYWORD,
        "position": _NUMBER,
    },
}

TODO_INDEXES = [
    IndexModel(
        [("status", ASCENDING), ("archived", ASCENDING), ("position", DESCENDING)],
        name="status_archived_position",
    ),
    IndexModel([("priority", ASCENDING)], name="priority"),
    IndexModel([("assignee", ASCENDING)], name="assignee"),
    IndexModel([("tags", ASCENDING)], name="tags"),
    IndexModel([("complianceStandards", ASCENDING)], name="compliance_standards"),
    IndexModel([("createdAt", DESCENDING)], name="created_at"),
    IndexModel([("dueDate", ASCENDING)], name="due_date"),
]

_BULK_OPS = ("index", "update", "delete")


def _strip_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc.pop("_id", None)
    return doc


def _bulk_item(op: str, doc_id: str, status: int, error: Optional[Dict[str, str]] = None):
    outcome: Dict[str, Any] = {"_id": doc_id, "status": status}
    if error is not None:
        outcome["error"] = error
    return {op: outcome}


class TodoStore:
    """
    Thin adapter over the TODO collection.
    Every record is stored with `_id` equal to its `id`; `_id` never leaves this class.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @property
    def name(self) -> str:
        return self.collection.name

    async def ensure_index(self) -> None:
        """
        Idempotent provisioning: collection with its schema validator, then
        secondary indexes. Failures are logged and re-raised.
        """
        try:
            database = self.collection.database
            existing = await database.list_collection_names(filter={"name": self.name})
            if self.name not in existing:
                try:
                    await database.create_collection(
                        self.name, validator={"$jsonSchema": TODO_SCHEMA}
                    )
                    logger.info("Created TODO collection: %s", self.name)
                except CollectionInvalid:
                    # created concurrently by another worker
                    pass
            await self.collection.create_indexes(TODO_INDEXES)
        except Exception:
            logger.exception("Error ensuring TODO collection %s", self.name)
            raise

    async def ping(self) -> None:
        await self.collection.database.command("ping")

    async def index(self, doc: Mapping[str, Any]) -> None:
        doc_id = doc["id"]
        await self.collection.replace_one({"_id": doc_id}, {**doc, "_id": doc_id}, upsert=True)

    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        return _strip_id(await self.collection.find_one({"_id": doc_id}))

    async def update(self, doc_id: str, fields: Mapping[str, Any]) -> bool:
        fields = {k: v for k, v in fields.items() if k != "_id"}
        result = await self.collection.update_one({"_id": doc_id}, compile_update(fields))
        return result.matched_count == 1

    async def delete(self, doc_id: str) -> bool:
        result = await self.collection.delete_one({"_id": doc_id})
        return result.deleted_count == 1

    async def bulk(self, actions: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Run index / update / delete actions in one unordered batch.

        Returns {"errors": bool, "items": [...]} where items[i] describes
        actions[i]: {op: {"_id", "status", "error"?}}. An update or delete
        addressed to a missing id is reported as a per-item error.
        """
        targeted = [a["id"] for a in actions if a["op"] in ("update", "delete")]
        present = set()
        if targeted:
            cursor = self.collection.find({"_id": {"$in": targeted}}, {"_id": 1})
            present = {doc["_id"] async for doc in cursor}

        items: List[Optional[Dict[str, Any]]] = [None] * len(actions)
        requests = []
        request_positions = []

        for position, action in enumerate(actions):
            op, doc_id = action["op"], action["id"]
            if op not in _BULK_OPS:
                raise ValueError(f"Unsupported bulk operation: {op}")

            if op in ("update", "delete") and doc_id not in present:
                items[position] = _bulk_item(
                    op,
                    doc_id,
                    404,
                    {"type": "document_missing_exception", "reason": f"[{doc_id}]: document missing"},
                )
                continue

            if op == "index":
                requests.append(InsertOne({**action["doc"], "id": doc_id, "_id": doc_id}))
            elif op == "update":
                requests.append(UpdateOne({"_id": doc_id}, compile_update(action["doc"])))
            else:
                requests.append(DeleteOne({"_id": doc_id}))
            request_positions.append(position)

        if requests:
            try:
                await self.collection.bulk_write(requests, ordered=False)
            except BulkWriteError as exc:
                details = exc.details or {}
                if details.get("writeConcernErrors"):
                    raise
                for write_error in details.get("writeErrors", []):
                    position = request_positions[write_error["index"]]
                    action = actions[position]
                    items[position] = _bulk_item(
                        action["op"],
                        action["id"],
                        409 if write_error.get("code") == 11000 else 400,
                        {"type": "write_error", "reason": write_error.get("errmsg", "Unknown error")},
                    )

        for position, action in enumerate(actions):
            if items[position] is None:
                items[position] = _bulk_item(
                    action["op"], action["id"], 201 if action["op"] == "index" else 200
                )

        return {
            "errors": any("error" in next(iter(item.values())) for item in items),
            "items": items,
        }

    async def search(
        self,
        query: Any,
        sort_field: str,
        sort_order: str,
        offset: int,
        size: int,
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = [
            {"$match": compile_filter(query)},
            *sort_stages(query, sort_field, sort_order),
            {
                "$facet": {
                    "items": [
                        {"$skip": offset},
                        {"$limit": size},
                        {"$project": {"_id": 0, MISSING_KEY: 0, SCORE_KEY: 0}},
                    ],
                    "total": [{"$count": "value"}],
                }
            },
        ]
        cursor = self.collection.aggregate(pipeline, allowDiskUse=True)
        results = await cursor.to_list(length=1)
        if not results:
            return [], 0
        result = results[0]
        total = result["total"][0]["value"] if result["total"] else 0
        return result["items"], total

    async def aggregate(self, query: Any, aggs: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Returns {"total": int, "aggregations": {name: {"buckets": [...]} | {"doc_count": int}}}.
        """
        facets = compile_aggregations(aggs)
        facets["__total"] = [{"$count": "value"}]
        pipeline = [{"$match": compile_filter(query)}, {"$facet": facets}]

        cursor = self.collection.aggregate(pipeline)
        results = await cursor.to_list(length=1)
        result = results[0] if results else {}

        total_rows = result.get("__total") or []
        aggregations: Dict[str, Any] = {}
        for name, agg in aggs.items():
            rows = result.get(name) or []
            if "terms" in agg:
                aggregations[name] = {
                    "buckets": [{"key": row["_id"], "doc_count": row["doc_count"]} for row in rows]
                }
            else:
                aggregations[name] = {"doc_count": rows[0]["doc_count"] if rows else 0}

        return {
            "total": total_rows[0]["value"] if total_rows else 0,
            "aggregations": aggregations,
        }

    async def delete_by_query(self, query: Any) -> int:
        result = await self.collection.delete_many(compile_filter(query))
        return result.deleted_count
