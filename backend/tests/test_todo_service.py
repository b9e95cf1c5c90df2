import asyncio
from datetime import datetime, timezone

import pytest

from todo_manager.core.errors import TodoNotFoundError
from todo_manager.crud.todos import parse_bulk_response, position_between
from todo_manager.schemas.todo import (
    CreateTodoRequest,
    TodoSearchParams,
    UpdateTodoRequest,
)


def run(coro):
    return asyncio.run(coro)


def create(service, **fields):
    return run(service.create_todo(CreateTodoRequest(**fields)))


def test_create_assigns_id_and_defaults(service, fake_store) -> None:
    first = create(service, title="Patch CVE")
    second = create(service, title="Patch CVE")

    assert first.id and second.id
    assert first.id != second.id
    assert first.status == "planned"
    assert first.priority == "medium"
    assert first.archived is False
    assert first.created_at == first.updated_at
    assert fake_store.docs[first.id]["title"] == "Patch CVE"
    # optional fields are not stored as null
    assert "assignee" not in fake_store.docs[first.id]


def test_create_positions_increase_within_column(service) -> None:
    positions = [create(service, title=f"Task {i}").position for i in range(3)]
    blocked = create(service, title="Other column", status="blocked")

    assert positions == [1000, 2000, 3000]
    assert blocked.position == 1000


def test_create_position_ignores_archived_items(service) -> None:
    first = create(service, title="A")
    run(service.archive_todo(first.id))

    assert create(service, title="B").position == 1000


def test_get_returns_none_for_missing(service) -> None:
    assert run(service.get_todo_by_id("nope")) is None


def test_update_missing_raises_not_found(service) -> None:
    with pytest.raises(TodoNotFoundError) as excinfo:
        run(service.update_todo("nope", UpdateTodoRequest(title="x")))
    assert "not found" in str(excinfo.value)


def test_update_merges_and_refreshes_updated_at(service, fake_store) -> None:
    todo = create(service, title="Original", assignee="Alice Johnson", tags=["security"])

    updated = run(
        service.update_todo(
            todo.id,
            UpdateTodoRequest.model_validate({"priority": "critical", "assignee": None}),
        )
    )

    assert updated.updated_at > todo.updated_at
    assert updated.created_at == todo.created_at
    assert updated.priority == "critical"
    assert updated.title == "Original"
    assert updated.tags == ["security"]
    assert updated.assignee is None
    assert "assignee" not in fake_store.docs[todo.id]


def test_archive_then_restore_round_trips(service, fake_store) -> None:
    todo = create(service, title="Rotate keys", priority="high", tags=["security"])

    archived = run(service.archive_todo(todo.id))
    assert archived.archived is True
    assert archived.archived_at is not None

    restored = run(service.restore_todo(todo.id))
    assert restored.archived is False
    assert restored.archived_at is None
    assert "archivedAt" not in fake_store.docs[todo.id]

    ignore = {"updated_at", "archived", "archived_at"}
    assert restored.model_dump(exclude=ignore) == todo.model_dump(exclude=ignore)


def test_reorder_sets_status_and_position(service) -> None:
    todo = create(service, title="Drag me")
    moved = run(service.reorder_todo(todo.id, "in_progress", 1500.5))

    assert moved.status == "in_progress"
    assert moved.position == 1500.5


def test_delete_removes_record(service) -> None:
    todo = create(service, title="Gone soon")
    run(service.delete_todo(todo.id))

    assert run(service.get_todo_by_id(todo.id)) is None
    with pytest.raises(TodoNotFoundError):
        run(service.delete_todo(todo.id))


def test_search_filters_by_archived_flag(service) -> None:
    kept = create(service, title="Kept")
    shelved = create(service, title="Shelved")
    run(service.archive_todo(shelved.id))

    active = run(service.search_todos(TodoSearchParams()))
    archived = run(service.search_todos(TodoSearchParams(archived=True)))

    assert [t.id for t in active.items] == [kept.id]
    assert [t.id for t in archived.items] == [shelved.id]


def test_search_paginates(service) -> None:
    for i in range(1, 26):
        create(service, title=f"Task {i}")

    page = run(
        service.search_todos(
            TodoSearchParams(page=2, size=10, sort_field="position", sort_order="asc")
        )
    )

    assert page.total == 25
    assert page.total_pages == 3
    assert page.page == 2
    assert [t.title for t in page.items] == [f"Task {i}" for i in range(11, 21)]


def test_search_filters_by_status_tags_and_assignee(service) -> None:
    create(service, title="One", status="blocked", tags=["urgent"], assignee="Grace Lee")
    create(service, title="Two", status="blocked", tags=["review"])
    create(service, title="Three", status="planned", tags=["urgent"], assignee="Grace Lee")

    result = run(
        service.search_todos(
            TodoSearchParams(status=["blocked", "in_progress"], tags=["urgent", "bug"], assignee="Grace Lee")
        )
    )

    assert [t.title for t in result.items] == ["One"]


def test_search_text_query_ranks_title_matches_first(service) -> None:
    create(service, title="Review firewall rules", description="quarterly")
    create(service, title="Quarterly audit", description="Check the firewall configuration")
    create(service, title="Unrelated", description="nothing here")

    result = run(
        service.search_todos(TodoSearchParams(query="  FIREWALL ", sort_field="_score"))
    )

    assert result.total == 2
    assert result.items[0].title == "Review firewall rules"


def test_search_sorts_missing_values_last_ascending_first_descending(service) -> None:
    create(service, title="No due date")
    create(service, title="Due", due_date=datetime(2026, 3, 1, tzinfo=timezone.utc))

    ascending = run(service.search_todos(TodoSearchParams(sort_field="dueDate", sort_order="asc")))
    descending = run(service.search_todos(TodoSearchParams(sort_field="dueDate", sort_order="desc")))

    assert [t.title for t in ascending.items] == ["Due", "No due date"]
    assert [t.title for t in descending.items] == ["No due date", "Due"]


def test_statistics_exclude_archived_records(service) -> None:
    past = datetime(2025, 6, 1, tzinfo=timezone.utc)
    for i in range(4):
        create(service, title=f"Done {i}", status="completed_success", compliance_standards=["sox"])
    for i in range(6):
        create(service, title=f"Open {i}", status="planned", due_date=past if i < 2 else None)
    for i in range(3):
        archived = create(service, title=f"Old {i}", status="completed_success", due_date=past)
        run(service.archive_todo(archived.id))

    stats = run(service.get_statistics())

    assert stats.total_count == 10
    assert stats.completion_rate == 40
    assert stats.by_status == {"completed_success": 4, "planned": 6}
    assert stats.by_priority == {"medium": 10}
    assert stats.by_compliance_standard == {"sox": 4}
    assert stats.overdue_count == 2


def test_statistics_on_empty_store(service) -> None:
    stats = run(service.get_statistics())
    assert stats.total_count == 0
    assert stats.completion_rate == 0


def test_bulk_archive_reports_partial_failure(service, fake_store) -> None:
    a, b, c = (create(service, title=name).id for name in "abc")
    fake_store.fail_ids.add(b)

    result = run(service.bulk_archive([a, b, c]))

    assert result.success is False
    assert result.processed == 2
    assert result.failed == 1
    assert [(e.id, e.error) for e in result.errors] == [(b, "simulated failure")]
    assert fake_store.docs[a]["archived"] is True
    assert fake_store.docs[c]["archived"] is True
    assert fake_store.docs[b]["archived"] is False


def test_bulk_update_folds_missing_ids_into_failed(service) -> None:
    todo = create(service, title="Real")

    result = run(service.bulk_update_status([todo.id, "ghost"], "blocked"))

    assert result.processed == 1
    assert result.failed == 1
    assert result.errors[0].id == "ghost"
    assert run(service.get_todo_by_id(todo.id)).status == "blocked"


def test_bulk_success_has_no_errors_list(service, fake_store) -> None:
    ids = [create(service, title=f"T{i}").id for i in range(3)]

    result = run(service.bulk_update_priority(ids, "low"))
    assert result.success is True
    assert result.errors is None

    result = run(service.bulk_assign(ids, "Ivy Chen"))
    assert all(fake_store.docs[i]["assignee"] == "Ivy Chen" for i in ids)

    run(service.bulk_assign(ids, None))
    assert all("assignee" not in fake_store.docs[i] for i in ids)


def test_bulk_restore_clears_archived_at(service, fake_store) -> None:
    ids = [create(service, title=f"T{i}").id for i in range(2)]
    run(service.bulk_archive(ids))
    assert all(fake_store.docs[i]["archivedAt"] for i in ids)

    result = run(service.bulk_restore(ids))

    assert result.success is True
    assert all(fake_store.docs[i]["archived"] is False for i in ids)
    assert all("archivedAt" not in fake_store.docs[i] for i in ids)


def test_bulk_operations_with_no_ids(service) -> None:
    for result in (
        run(service.bulk_delete([])),
        run(service.bulk_archive([])),
        run(service.bulk_create([])),
    ):
        assert (result.success, result.processed, result.failed) == (True, 0, 0)


def test_bulk_delete_and_delete_all(service, fake_store) -> None:
    ids = [create(service, title=f"T{i}").id for i in range(4)]

    result = run(service.bulk_delete(ids[:2]))
    assert result.processed == 2
    assert set(fake_store.docs) == set(ids[2:])

    assert run(service.delete_all()).deleted == 2
    assert fake_store.docs == {}


def test_seed_inserts_in_batches(service, fake_store) -> None:
    result = run(service.seed(7, batch_size=3))

    assert result.requested == 7
    assert result.processed == 7
    assert result.failed == 0
    assert result.duration.endswith("ms")
    assert len(fake_store.docs) == 7
    assert all(doc["id"] == doc_id for doc_id, doc in fake_store.docs.items())


def test_parse_bulk_response_uses_positional_ids() -> None:
    response = {
        "errors": True,
        "items": [
            {"update": {"_id": "x", "status": 200}},
            {"update": {"_id": "y", "status": 404, "error": {"reason": "document missing"}}},
            {"delete": {"_id": "z", "status": 500, "error": {"type": "internal"}}},
        ],
    }

    result = parse_bulk_response(response, ["a", "b", "c"])

    assert result.processed == 1
    assert result.failed == 2
    assert [(e.id, e.error) for e in result.errors] == [
        ("b", "document missing"),
        ("c", "Unknown error"),
    ]


def test_position_between_neighbours() -> None:
    assert position_between(1000, 2000) == 1500
    assert position_between(1000, 1500) == 1250
    assert position_between(None, 1000) == 0
    assert position_between(3000, None) == 4000
    assert position_between(None, None) == 1000


def test_update_raises_when_record_vanishes_before_write(service, fake_store) -> None:
    todo = create(service, title="Racing delete")

    async def nothing_matched(doc_id, fields):
        return False

    fake_store.update = nothing_matched

    with pytest.raises(TodoNotFoundError):
        run(service.update_todo(todo.id, UpdateTodoRequest(title="Too late")))


def test_search_date_only_upper_bound_covers_whole_day(service, clock) -> None:
    clock.current = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)
    inside = create(service, title="Mid-morning")
    clock.current = datetime(2026, 1, 16, 0, 0, 5, tzinfo=timezone.utc)
    create(service, title="Next day")

    result = run(
        service.search_todos(
            TodoSearchParams.model_validate({"dateFrom": "2026-01-15", "dateTo": "2026-01-15"})
        )
    )

    assert [t.id for t in result.items] == [inside.id]
