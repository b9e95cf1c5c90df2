# backend/todo_manager/api/endpoints/todos.py

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import QueryParams

from todo_manager.api.deps import get_todo_service
from todo_manager.crud.todos import TodoService, position_between
from todo_manager.schemas.todo import (
    ApiResponse,
    BulkAssignRequest,
    BulkIdsRequest,
    BulkOperationResult,
    BulkPriorityRequest,
    BulkStatusRequest,
    CreateTodoRequest,
    DeleteAllResult,
    PaginatedResponse,
    ReorderRequest,
    SeedRequest,
    SeedResult,
    TodoItem,
    TodoSearchParams,
    TodoStatistics,
    UpdateTodoRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def query_params_to_dict(query_params: QueryParams) -> Dict[str, Any]:
    """
    Raw query string -> plain dict.
    `status=a&status=b` and `status[]=a` both become lists, a single value
    stays a scalar (the search schema turns scalars into lists).
    """
    raw: Dict[str, Any] = {}
    for key in query_params.keys():
        values = query_params.getlist(key)
        name = key[:-2] if key.endswith("[]") else key
        if name in raw:
            existing = raw[name] if isinstance(raw[name], list) else [raw[name]]
            raw[name] = existing + values
        else:
            raw[name] = values if len(values) > 1 or key.endswith("[]") else values[0]
    return raw


def parse_search_params(query_params: QueryParams) -> TodoSearchParams:
    try:
        return TodoSearchParams.model_validate(query_params_to_dict(query_params))
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


def _error_response(exc: Exception, message: str) -> JSONResponse:
    """
    Single place mapping service failures to HTTP:
    "not found" -> 404, anything else -> 500 with the underlying message.
    """
    if "not found" in str(exc).lower():
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": str(exc)},
        )
    logger.exception(message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": message, "error": str(exc)},
    )


# --------------------------------------------------------------------------
# List / search / statistics
# --------------------------------------------------------------------------
@router.get("", response_model=ApiResponse[PaginatedResponse], response_model_exclude_none=True)
async def list_todos(request: Request, service: TodoService = Depends(get_todo_service)):
    params = parse_search_params(request.query_params)
    try:
        results = await service.search_todos(params)
    except Exception as exc:
        return _error_response(exc, "Failed to list TODO items")
    return ApiResponse(success=True, data=results)


@router.post("/search", response_model=ApiResponse[PaginatedResponse], response_model_exclude_none=True)
async def search_todos(
    params: Optional[TodoSearchParams] = None,
    service: TodoService = Depends(get_todo_service),
):
    try:
        results = await service.search_todos(params or TodoSearchParams())
    except Exception as exc:
        return _error_response(exc, "Failed to search TODO items")
    return ApiResponse(success=True, data=results)


@router.get("/statistics", response_model=ApiResponse[TodoStatistics], response_model_exclude_none=True)
async def get_statistics(service: TodoService = Depends(get_todo_service)):
    try:
        stats = await service.get_statistics()
    except Exception as exc:
        return _error_response(exc, "Failed to fetch statistics")
    return ApiResponse(success=True, data=stats)


# --------------------------------------------------------------------------
# Bulk operations
# --------------------------------------------------------------------------
def _bulk_response(result: BulkOperationResult, message: str) -> ApiResponse[BulkOperationResult]:
    return ApiResponse(success=result.success, data=result, message=message)


@router.post("/bulk/delete", response_model=ApiResponse[BulkOperationResult], response_model_exclude_none=True)
async def bulk_delete(body: BulkIdsRequest, service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.bulk_delete(body.ids)
    except Exception as exc:
        return _error_response(exc, "Failed to bulk delete TODO items")
    return _bulk_response(result, f"Deleted {result.processed} TODO items")


@router.post("/bulk/archive", response_model=ApiResponse[BulkOperationResult], response_model_exclude_none=True)
async def bulk_archive(body: BulkIdsRequest, service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.bulk_archive(body.ids)
    except Exception as exc:
        return _error_response(exc, "Failed to bulk archive TODO items")
    return _bulk_response(result, f"Archived {result.processed} TODO items")


@router.post("/bulk/restore", response_model=ApiResponse[BulkOperationResult], response_model_exclude_none=True)
async def bulk_restore(body: BulkIdsRequest, service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.bulk_restore(body.ids)
    except Exception as exc:
        return _error_response(exc, "Failed to bulk restore TODO items")
    return _bulk_response(result, f"Restored {result.processed} TODO items")


@router.post("/bulk/status", response_model=ApiResponse[BulkOperationResult], response_model_exclude_none=True)
async def bulk_update_status(body: BulkStatusRequest, service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.bulk_update_status(body.ids, body.status)
    except Exception as exc:
        return _error_response(exc, "Failed to bulk update status")
    return _bulk_response(
        result, f'Updated status of {result.processed} TODO items to "{body.status}"'
    )


@router.post("/bulk/priority", response_model=ApiResponse[BulkOperationResult], response_model_exclude_none=True)
async def bulk_update_priority(body: BulkPriorityRequest, service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.bulk_update_priority(body.ids, body.priority)
    except Exception as exc:
        return _error_response(exc, "Failed to bulk update priority")
    return _bulk_response(
        result, f'Updated priority of {result.processed} TODO items to "{body.priority}"'
    )


@router.post("/bulk/assign", response_model=ApiResponse[BulkOperationResult], response_model_exclude_none=True)
async def bulk_assign(body: BulkAssignRequest, service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.bulk_assign(body.ids, body.assignee)
    except Exception as exc:
        return _error_response(exc, "Failed to bulk assign TODO items")
    if body.assignee:
        message = f'Assigned {result.processed} TODO items to "{body.assignee}"'
    else:
        message = f"Unassigned {result.processed} TODO items"
    return _bulk_response(result, message)


# --------------------------------------------------------------------------
# Seed & cleanup (testing utilities)
# --------------------------------------------------------------------------
@router.post("/seed", response_model=ApiResponse[SeedResult], response_model_exclude_none=True)
async def seed_todos(
    body: Optional[SeedRequest] = None,
    service: TodoService = Depends(get_todo_service),
):
    count = (body or SeedRequest()).count
    try:
        result = await service.seed(count)
    except Exception as exc:
        return _error_response(exc, "Failed to seed TODO items")
    return ApiResponse(
        success=result.failed == 0,
        data=result,
        message=f"Seeded {result.processed} TODO items in {result.duration}",
    )


@router.delete("/all", response_model=ApiResponse[DeleteAllResult], response_model_exclude_none=True)
async def delete_all_todos(service: TodoService = Depends(get_todo_service)):
    try:
        result = await service.delete_all()
    except Exception as exc:
        return _error_response(exc, "Failed to delete all TODO items")
    return ApiResponse(success=True, data=result, message=f"Deleted {result.deleted} TODO items")


# --------------------------------------------------------------------------
# Single-record CRUD
# --------------------------------------------------------------------------
@router.post("", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def create_todo(body: CreateTodoRequest, service: TodoService = Depends(get_todo_service)):
    try:
        todo = await service.create_todo(body)
    except Exception as exc:
        return _error_response(exc, "Failed to create TODO item")
    return ApiResponse(success=True, data=todo)


@router.get("/{todo_id}", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def get_todo(todo_id: str, service: TodoService = Depends(get_todo_service)):
    try:
        todo = await service.get_todo_by_id(todo_id)
    except Exception as exc:
        return _error_response(exc, "Failed to fetch TODO item")
    if todo is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "TODO item not found"},
        )
    return ApiResponse(success=True, data=todo)


@router.put("/{todo_id}", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def update_todo(
    todo_id: str,
    body: UpdateTodoRequest,
    service: TodoService = Depends(get_todo_service),
):
    try:
        todo = await service.update_todo(todo_id, body)
    except Exception as exc:
        return _error_response(exc, "Failed to update TODO item")
    return ApiResponse(success=True, data=todo)


@router.delete("/{todo_id}", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def delete_todo(todo_id: str, service: TodoService = Depends(get_todo_service)):
    try:
        await service.delete_todo(todo_id)
    except Exception as exc:
        return _error_response(exc, "Failed to delete TODO item")
    return ApiResponse(success=True, message="TODO item deleted successfully")


@router.post("/{todo_id}/archive", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def archive_todo(todo_id: str, service: TodoService = Depends(get_todo_service)):
    try:
        todo = await service.archive_todo(todo_id)
    except Exception as exc:
        return _error_response(exc, "Failed to archive TODO item")
    return ApiResponse(success=True, data=todo, message="TODO item archived successfully")


@router.post("/{todo_id}/restore", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def restore_todo(todo_id: str, service: TodoService = Depends(get_todo_service)):
    try:
        todo = await service.restore_todo(todo_id)
    except Exception as exc:
        return _error_response(exc, "Failed to restore TODO item")
    return ApiResponse(success=True, data=todo, message="TODO item restored successfully")


@router.post("/{todo_id}/reorder", response_model=ApiResponse[TodoItem], response_model_exclude_none=True)
async def reorder_todo(
    todo_id: str,
    body: ReorderRequest,
    service: TodoService = Depends(get_todo_service),
):
    try:
        position = body.position
        if position is None:
            position = position_between(body.before_position, body.after_position)
        todo = await service.reorder_todo(todo_id, body.status, position)
    except Exception as exc:
        return _error_response(exc, "Failed to reorder TODO item")
    return ApiResponse(success=True, data=todo)
