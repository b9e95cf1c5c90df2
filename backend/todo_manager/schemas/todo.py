# backend/todo_manager/schemas/todo.py

import re
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from todo_manager.core.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
    MAX_PAGE_SIZE,
    SEED_MAX_TODOS,
    SEED_TOTAL_TODOS,
    SORTABLE_FIELDS,
)


class TodoStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED_SUCCESS = "completed_success"
    COMPLETED_ERROR = "completed_error"
    BLOCKED = "blocked"


class TodoPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComplianceStandard(str, Enum):
    PCI_DSS = "pci_dss"
    ISO_27001 = "iso_27001"
    SOX = "sox"
    HIPAA = "hipaa"
    GDPR = "gdpr"
    NIST = "nist"


class CamelModel(BaseModel):
    """
    Python attributes are snake_case; JSON bodies and stored documents are camelCase.
    Enums are kept as their string values so documents can be written as-is.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


# --- Stored record ---
class TodoItem(CamelModel):
    """
    A single TODO record exactly as it is persisted in the collection.
    """
    id: str
    title: str
    description: Optional[str] = None
    status: TodoStatus = TodoStatus.PLANNED
    priority: TodoPriority = TodoPriority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    compliance_standards: List[ComplianceStandard] = Field(default_factory=list)
    assignee: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    planned_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_details: Optional[str] = None
    archived: bool = False
    archived_at: Optional[datetime] = None
    story_points: Optional[int] = None
    cover_image: Optional[str] = None
    position: Optional[float] = None


# --- API request schemas ---
class CreateTodoRequest(CamelModel):
    """
    [Request] POST /todos
    id, timestamps and position are assigned by the server.
    """
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    priority: TodoPriority = TodoPriority.MEDIUM
    status: Optional[TodoStatus] = None
    tags: Optional[List[str]] = Field(None, max_length=20)
    compliance_standards: Optional[List[ComplianceStandard]] = Field(None, max_length=10)
    assignee: Optional[str] = Field(None, max_length=100)
    planned_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    story_points: Optional[int] = Field(None, ge=0, le=100)
    cover_image: Optional[str] = Field(None, max_length=500)


_NON_NULLABLE_UPDATE_FIELDS = ("title", "status", "priority", "tags", "compliance_standards", "archived")


class UpdateTodoRequest(CamelModel):
    """
    [Request] PUT /todos/{id}
    Every field is optional. Only fields present in the body are applied;
    an explicit null clears the stored value, except for the fields in
    _NON_NULLABLE_UPDATE_FIELDS.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: Optional[TodoStatus] = None
    priority: Optional[TodoPriority] = None
    tags: Optional[List[str]] = Field(None, max_length=20)
    compliance_standards: Optional[List[ComplianceStandard]] = Field(None, max_length=10)
    assignee: Optional[str] = Field(None, max_length=100)
    planned_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_details: Optional[str] = Field(None, max_length=1000)
    archived: Optional[bool] = None
    archived_at: Optional[datetime] = None
    story_points: Optional[int] = Field(None, ge=0, le=100)
    cover_image: Optional[str] = Field(None, max_length=500)
    position: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _reject_null_required_fields(cls, data: Any) -> Any:
        # these can be changed but never cleared
        if isinstance(data, dict):
            for name in _NON_NULLABLE_UPDATE_FIELDS:
                alias = to_camel(name)
                if data.get(name, ...) is None or data.get(alias, ...) is None:
                    raise ValueError(f"{alias} cannot be null")
        return data


_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _as_list(value: Any) -> Any:
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, (tuple, set)):
        return list(value)
    return [value]


class TodoSearchParams(CamelModel):
    """
    [Request] GET /todos (query string) and POST /todos/search (body).
    Multi-valued filters accept a scalar or a list; numbers and booleans may
    arrive as strings.
    """
    query: Optional[str] = Field(None, max_length=500)
    status: Optional[List[TodoStatus]] = None
    priority: Optional[List[TodoPriority]] = None
    tags: Optional[List[str]] = None
    compliance_standards: Optional[List[ComplianceStandard]] = None
    assignee: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_field: str = DEFAULT_SORT_FIELD
    sort_order: Literal["asc", "desc"] = DEFAULT_SORT_ORDER
    page: int = Field(1, ge=1)
    size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    archived: bool = False

    @field_validator("status", "priority", "tags", "compliance_standards", mode="before")
    @classmethod
    def _normalize_list(cls, value):
        return _as_list(value)

    @field_validator("date_to", mode="before")
    @classmethod
    def _widen_date_only_upper_bound(cls, value):
        # a bare date as the upper bound includes that whole day
        if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
            value = date.fromisoformat(value.strip())
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.max, tzinfo=timezone.utc)
        return value

    @field_validator("date_from", "date_to")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        # naive input is taken as UTC, like every stored timestamp
        return _as_utc(value)

    @field_validator("sort_field")
    @classmethod
    def _check_sort_field(cls, value: str) -> str:
        if value not in SORTABLE_FIELDS:
            raise ValueError(f"sortField must be one of: {', '.join(SORTABLE_FIELDS)}")
        return value


class ReorderRequest(CamelModel):
    """
    [Request] POST /todos/{id}/reorder
    Kanban drag-and-drop: target column and fractional position in one write.
    Without an explicit position, the neighbours' positions are used to place
    the card between them.
    """
    status: TodoStatus
    position: Optional[float] = None
    before_position: Optional[float] = None
    after_position: Optional[float] = None


class BulkIdsRequest(CamelModel):
    ids: List[str] = Field(..., max_length=1000)


class BulkStatusRequest(BulkIdsRequest):
    status: TodoStatus


class BulkPriorityRequest(BulkIdsRequest):
    priority: TodoPriority


class BulkAssignRequest(BulkIdsRequest):
    # None unassigns
    assignee: Optional[str] = Field(None, max_length=100)


class SeedRequest(CamelModel):
    count: int = Field(SEED_TOTAL_TODOS, ge=1, le=SEED_MAX_TODOS)


# --- API response schemas ---
class PaginatedResponse(CamelModel):
    items: List[TodoItem]
    total: int
    page: int
    size: int
    total_pages: int


class TodoStatistics(CamelModel):
    """
    Dashboard aggregates over non-archived records.
    """
    total_count: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    by_compliance_standard: Dict[str, int]
    completion_rate: float
    overdue_count: int


class BulkItemError(CamelModel):
    id: str
    error: str


class BulkOperationResult(CamelModel):
    """
    Partial failure is data, not an exception.
    `errors` is only set when at least one item failed.
    """
    success: bool
    processed: int
    failed: int
    errors: Optional[List[BulkItemError]] = None


class SeedResult(CamelModel):
    requested: int
    processed: int
    failed: int
    duration: str


class DeleteAllResult(CamelModel):
    deleted: int


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    Uniform envelope returned by every /todos endpoint.
    """
    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None
