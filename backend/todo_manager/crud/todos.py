# backend/todo_manager/crud/todos.py

import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from todo_manager.core.constants import POSITION_STEP, SEED_BATCH_SIZE
from todo_manager.core.errors import TodoNotFoundError
from todo_manager.crud.query import BoolQuery, build_search_query, exists, term
from todo_manager.db.store import TodoStore
from todo_manager.schemas.todo import (
    BulkItemError,
    BulkOperationResult,
    CreateTodoRequest,
    DeleteAllResult,
    PaginatedResponse,
    SeedResult,
    TodoItem,
    TodoPriority,
    TodoSearchParams,
    TodoStatistics,
    TodoStatus,
    UpdateTodoRequest,
)
from todo_manager.utils.seed_data import generate_todos_in_batches

logger = logging.getLogger(__name__)

OPEN_STATUSES = [TodoStatus.PLANNED.value, TodoStatus.IN_PROGRESS.value]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_document(todo: TodoItem) -> Dict[str, Any]:
    # None values stay in the dict so partial updates can $unset them
    return todo.model_dump(by_alias=True)


def _changes(data: UpdateTodoRequest) -> Dict[str, Any]:
    """Fields the caller actually sent, in stored (camelCase) form."""
    return data.model_dump(by_alias=True, exclude_unset=True)


def parse_bulk_response(response: Mapping[str, Any], ids: Sequence[str]) -> BulkOperationResult:
    """
    Fold per-item batch outcomes (positionally matched to `ids`) into a
    BulkOperationResult. `errors` stays None unless something failed.
    """
    errors: List[BulkItemError] = []

    if response.get("errors"):
        for index, item in enumerate(response.get("items", [])):
            outcome = item.get("update") or item.get("delete") or item.get("index") or {}
            error = outcome.get("error")
            if error:
                errors.append(
                    BulkItemError(id=ids[index], error=error.get("reason") or "Unknown error")
                )

    failed = len(errors)
    return BulkOperationResult(
        success=failed == 0,
        processed=len(ids) - failed,
        failed=failed,
        errors=errors or None,
    )


def position_between(before: Optional[float], after: Optional[float]) -> float:
    """
    Kanban drop position between two neighbours (either may be None at a
    column end). Siblings are never renumbered.
    """
    if before is None and after is None:
        return POSITION_STEP
    if before is None:
        return after - POSITION_STEP
    if after is None:
        return before + POSITION_STEP
    return (before + after) / 2


def _buckets_to_dict(agg: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    if not agg:
        return {}
    return {bucket["key"]: bucket["doc_count"] for bucket in agg.get("buckets", [])}


class TodoService:
    """
    Business rules for TODO records: defaults, timestamps, kanban positions,
    archive / restore, bulk operations and dashboard statistics.
    All state lives in the store.
    """

    def __init__(self, store: TodoStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_todo(self, data: CreateTodoRequest) -> TodoItem:
        now = self.clock()
        status = data.status or TodoStatus.PLANNED.value
        max_position = await self._get_max_position_in_status(status)

        todo = TodoItem(
            id=str(uuid.uuid4()),
            title=data.title,
            description=data.description,
            status=status,
            priority=data.priority or TodoPriority.MEDIUM.value,
            tags=data.tags or [],
            compliance_standards=data.compliance_standards or [],
            assignee=data.assignee,
            created_at=now,
            updated_at=now,
            planned_date=data.planned_date,
            due_date=data.due_date,
            archived=False,
            story_points=data.story_points,
            cover_image=data.cover_image,
            # append to the end of the column
            position=max_position + POSITION_STEP,
        )

        await self.store.index(todo.model_dump(by_alias=True, exclude_none=True))
        logger.info("Created TODO item: %s", todo.id)
        return todo

    async def _get_max_position_in_status(self, status: str) -> float:
        query = BoolQuery(
            filter=[*term("status", status), *term("archived", False), *exists("position")]
        )
        docs, _ = await self.store.search(query, "position", "desc", 0, 1)
        if docs and docs[0].get("position") is not None:
            return docs[0]["position"]
        return 0

    async def get_todo_by_id(self, todo_id: str) -> Optional[TodoItem]:
        doc = await self.store.get(todo_id)
        if doc is None:
            return None
        return TodoItem.model_validate(doc)

    async def update_todo(self, todo_id: str, data: UpdateTodoRequest) -> TodoItem:
        existing = await self.get_todo_by_id(todo_id)
        if existing is None:
            raise TodoNotFoundError(todo_id)

        merged = TodoItem.model_validate(
            {
                **_to_document(existing),
                **_changes(data),
                "updatedAt": self.clock(),
            }
        )

        if not await self.store.update(todo_id, _to_document(merged)):
            # removed between the read and the write
            raise TodoNotFoundError(todo_id)
        logger.info("Updated TODO item: %s", todo_id)
        return merged

    async def delete_todo(self, todo_id: str) -> None:
        deleted = await self.store.delete(todo_id)
        if not deleted:
            raise TodoNotFoundError(todo_id)
        logger.info("Deleted TODO item: %s", todo_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_todos(self, params: TodoSearchParams) -> PaginatedResponse:
        query = build_search_query(params)
        offset = (params.page - 1) * params.size

        docs, total = await self.store.search(
            query, params.sort_field, params.sort_order, offset, params.size
        )

        return PaginatedResponse(
            items=[TodoItem.model_validate(doc) for doc in docs],
            total=total,
            page=params.page,
            size=params.size,
            total_pages=math.ceil(total / params.size),
        )

    # ------------------------------------------------------------------
    # Archive / restore / reorder
    # ------------------------------------------------------------------

    async def archive_todo(self, todo_id: str) -> TodoItem:
        return await self.update_todo(
            todo_id, UpdateTodoRequest(archived=True, archived_at=self.clock())
        )

    async def restore_todo(self, todo_id: str) -> TodoItem:
        return await self.update_todo(
            todo_id, UpdateTodoRequest(archived=False, archived_at=None)
        )

    async def reorder_todo(self, todo_id: str, status: str, position: float) -> TodoItem:
        """
        Move a card within or across kanban columns.
        The position is stored as given; callers compute midpoints (or
        neighbour +/- POSITION_STEP at column ends).
        """
        return await self.update_todo(
            todo_id, UpdateTodoRequest(status=status, position=position)
        )

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def bulk_update(self, ids: Sequence[str], updates: UpdateTodoRequest) -> BulkOperationResult:
        if not ids:
            return BulkOperationResult(success=True, processed=0, failed=0)

        doc = {**_changes(updates), "updatedAt": self.clock()}
        actions = [{"op": "update", "id": todo_id, "doc": doc} for todo_id in ids]

        response = await self.store.bulk(actions)
        result = parse_bulk_response(response, ids)
        logger.info("Bulk updated %d TODO items, %d failed", result.processed, result.failed)
        return result

    async def bulk_update_status(self, ids: Sequence[str], status: str) -> BulkOperationResult:
        return await self.bulk_update(ids, UpdateTodoRequest(status=status))

    async def bulk_update_priority(self, ids: Sequence[str], priority: str) -> BulkOperationResult:
        return await self.bulk_update(ids, UpdateTodoRequest(priority=priority))

    async def bulk_assign(self, ids: Sequence[str], assignee: Optional[str]) -> BulkOperationResult:
        return await self.bulk_update(ids, UpdateTodoRequest(assignee=assignee))

    async def bulk_archive(self, ids: Sequence[str]) -> BulkOperationResult:
        return await self.bulk_update(
            ids, UpdateTodoRequest(archived=True, archived_at=self.clock())
        )

    async def bulk_restore(self, ids: Sequence[str]) -> BulkOperationResult:
        return await self.bulk_update(ids, UpdateTodoRequest(archived=False, archived_at=None))

    async def bulk_delete(self, ids: Sequence[str]) -> BulkOperationResult:
        if not ids:
            return BulkOperationResult(success=True, processed=0, failed=0)

        response = await self.store.bulk([{"op": "delete", "id": todo_id} for todo_id in ids])
        result = parse_bulk_response(response, ids)
        logger.info("Bulk deleted %d TODO items, %d failed", result.processed, result.failed)
        return result

    async def bulk_create(self, todos: Sequence[Mapping[str, Any]]) -> BulkOperationResult:
        """Insert pre-built records (no id). Used by the seeding utility."""
        if not todos:
            return BulkOperationResult(success=True, processed=0, failed=0)

        ids = [str(uuid.uuid4()) for _ in todos]
        actions = [
            {"op": "index", "id": todo_id, "doc": {**todo, "id": todo_id}}
            for todo_id, todo in zip(ids, todos)
        ]

        response = await self.store.bulk(actions)
        result = parse_bulk_response(response, ids)
        logger.info("Bulk created %d TODO items, %d failed", result.processed, result.failed)
        return result

    async def seed(self, count: int, batch_size: int = SEED_BATCH_SIZE) -> SeedResult:
        logger.info("Starting seed of %d TODO items...", count)
        started = time.perf_counter()

        processed = failed = 0
        for batch in generate_todos_in_batches(count, batch_size):
            result = await self.bulk_create(batch)
            processed += result.processed
            failed += result.failed

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Seed completed: %d created, %d failed in %dms", processed, failed, duration_ms
        )
        return SeedResult(
            requested=count,
            processed=processed,
            failed=failed,
            duration=f"{duration_ms}ms",
        )

    async def delete_all(self) -> DeleteAllResult:
        """Remove every record. Test / maintenance only."""
        deleted = await self.store.delete_by_query(BoolQuery())
        logger.info("Deleted all %d TODO items", deleted)
        return DeleteAllResult(deleted=deleted)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_statistics(self) -> TodoStatistics:
        now = self.clock()
        query = BoolQuery(filter=term("archived", False))
        aggs = {
            "by_status": {"terms": {"field": "status"}},
            "by_priority": {"terms": {"field": "priority"}},
            "by_compliance_standard": {"terms": {"field": "complianceStandards"}},
            "completed_items": {"filter": {"term": {"status": TodoStatus.COMPLETED_SUCCESS.value}}},
            "overdue_items": {
                "filter": {
                    "bool": {
                        "filter": [
                            {"range": {"dueDate": {"lt": now}}},
                            {"terms": {"status": OPEN_STATUSES}},
                        ]
                    }
                }
            },
        }

        response = await self.store.aggregate(query, aggs)
        aggregations = response.get("aggregations", {})
        total = response.get("total", 0)
        completed = aggregations.get("completed_items", {}).get("doc_count", 0)

        return TodoStatistics(
            total_count=total,
            by_status=_buckets_to_dict(aggregations.get("by_status")),
            by_priority=_buckets_to_dict(aggregations.get("by_priority")),
            by_compliance_standard=_buckets_to_dict(aggregations.get("by_compliance_standard")),
            completion_rate=completed * 100 / total if total > 0 else 0,
            overdue_count=aggregations.get("overdue_items", {}).get("doc_count", 0),
        )
