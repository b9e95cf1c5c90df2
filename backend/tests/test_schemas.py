from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from todo_manager.schemas.todo import (
    BulkOperationResult,
    CreateTodoRequest,
    TodoSearchParams,
    UpdateTodoRequest,
)


def test_search_params_coerce_query_string_values() -> None:
    params = TodoSearchParams.model_validate(
        {
            "status": "planned",
            "priority": ["high", "critical"],
            "complianceStandards": "gdpr",
            "page": "2",
            "size": "10",
            "archived": "true",
        }
    )

    assert params.status == ["planned"]
    assert params.priority == ["high", "critical"]
    assert params.compliance_standards == ["gdpr"]
    assert params.page == 2
    assert params.size == 10
    assert params.archived is True


def test_search_params_defaults() -> None:
    params = TodoSearchParams()

    assert (params.page, params.size) == (1, 25)
    assert (params.sort_field, params.sort_order) == ("createdAt", "desc")
    assert params.archived is False


@pytest.mark.parametrize(
    "raw",
    [
        {"sortField": "$where"},
        {"sortOrder": "sideways"},
        {"size": "0"},
        {"size": 101},
        {"page": 0},
        {"status": "done"},
    ],
)
def test_search_params_reject_bad_values(raw) -> None:
    with pytest.raises(ValidationError):
        TodoSearchParams.model_validate(raw)


def test_create_request_limits() -> None:
    with pytest.raises(ValidationError):
        CreateTodoRequest(title="")
    with pytest.raises(ValidationError):
        CreateTodoRequest(title="x", story_points=101)
    with pytest.raises(ValidationError):
        CreateTodoRequest(title="x", tags=[f"t{i}" for i in range(21)])

    request = CreateTodoRequest.model_validate({"title": "x", "complianceStandards": ["nist"]})
    assert request.priority == "medium"
    assert request.compliance_standards == ["nist"]


def test_update_request_tracks_explicit_nulls() -> None:
    update = UpdateTodoRequest.model_validate({"assignee": None, "title": "New"})

    assert update.model_dump(by_alias=True, exclude_unset=True) == {"assignee": None, "title": "New"}


def test_bulk_result_omits_errors_when_clean() -> None:
    result = BulkOperationResult(success=True, processed=3, failed=0)
    assert "errors" not in result.model_dump(exclude_none=True)


def test_search_date_bounds_are_utc_and_cover_whole_day() -> None:
    params = TodoSearchParams.model_validate({"dateFrom": "2026-01-15", "dateTo": "2026-01-15"})

    assert params.date_from == datetime(2026, 1, 15, tzinfo=timezone.utc)
    assert params.date_to == datetime(2026, 1, 15, 23, 59, 59, 999999, tzinfo=timezone.utc)

    explicit = TodoSearchParams.model_validate({"dateTo": "2026-01-15T08:30:00"})
    assert explicit.date_to == datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("field", ["title", "status", "priority", "tags", "complianceStandards", "archived"])
def test_update_request_rejects_null_for_required_fields(field) -> None:
    with pytest.raises(ValidationError):
        UpdateTodoRequest.model_validate({field: None})


def test_update_request_allows_clearing_optional_fields() -> None:
    update = UpdateTodoRequest.model_validate({"dueDate": None, "archivedAt": None, "position": None})
    assert update.model_dump(by_alias=True, exclude_unset=True) == {
        "dueDate": None,
        "archivedAt": None,
        "position": None,
    }
