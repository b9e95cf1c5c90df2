# backend/todo_manager/utils/seed_data.py
"""
Synthetic TODO records for load / UI testing.
Records are returned in stored (camelCase) form without an id;
ids are assigned when they are bulk-inserted.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from todo_manager.core.constants import SEED_BATCH_SIZE, SEED_TOTAL_TODOS
from todo_manager.schemas.todo import ComplianceStandard, TodoPriority, TodoStatus

STATUSES = [s.value for s in TodoStatus]
PRIORITIES = [p.value for p in TodoPriority]
STANDARDS = [c.value for c in ComplianceStandard]

ASSIGNEES = [
    "Alice Johnson", "Bob Smith", "Charlie Brown", "Diana Prince",
    "Eve Wilson", "Frank Miller", "Grace Lee", "Henry Davis",
    "Ivy Chen", "Jack Taylor",
]

TAGS = [
    "security", "compliance", "urgent", "review", "backend",
    "frontend", "bug", "feature", "refactor", "documentation",
    "performance", "testing", "deployment", "monitoring",
]

VERBS = [
    "Implement", "Fix", "Review", "Update", "Audit", "Configure",
    "Deploy", "Test", "Optimize", "Refactor", "Document", "Migrate",
    "Investigate", "Validate", "Monitor", "Analyze",
]

NOUNS = [
    "authentication system", "database indexes", "API endpoints",
    "dashboard widgets", "security rules", "compliance checks",
    "backup procedures", "log rotation", "user permissions",
    "rate limiting", "cache layer", "search functionality",
    "notification service", "audit trail", "data encryption",
]

DESCRIPTIONS = [
    "This task requires immediate attention due to compliance requirements.",
    "Review and update the existing implementation to meet new security standards.",
    "Perform thorough testing before deployment to production environment.",
    "Coordinate with the security team to validate the changes.",
    "Document all changes and update the relevant wiki pages.",
    "This is a follow-up task from the last security audit.",
    "Ensure backwards compatibility with existing integrations.",
    "Monitor performance metrics after implementation.",
]


def _random_date(rng: random.Random, now: datetime, days_ago: float, days_ahead: float) -> datetime:
    offset_days = rng.random() * (days_ahead + days_ago) - days_ago
    return now + timedelta(days=offset_days)


def _random_subset(rng: random.Random, pool: List[str], max_count: int) -> List[str]:
    selected: List[str] = []
    for _ in range(rng.randrange(max_count + 1)):
        choice = rng.choice(pool)
        if choice not in selected:
            selected.append(choice)
    return selected


def _description(index: int) -> str:
    base = DESCRIPTIONS[index % len(DESCRIPTIONS)]
    return f"{base}\n\nAdditional context for task #{index + 1}. Created for performance testing purposes."


def generate_todos(
    count: int = SEED_TOTAL_TODOS,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    todos = []

    for i in range(count):
        status = rng.choice(STATUSES)
        is_completed = status in (TodoStatus.COMPLETED_SUCCESS.value, TodoStatus.COMPLETED_ERROR.value)
        is_archived = rng.random() < 0.1  # ~10% archived

        todo = {
            "title": f"Task #{i + 1}: {rng.choice(VERBS)} {rng.choice(NOUNS)}",
            "description": _description(i),
            "status": status,
            "priority": rng.choice(PRIORITIES),
            "tags": _random_subset(rng, TAGS, 3),
            "complianceStandards": _random_subset(rng, STANDARDS, 2),
            "createdAt": _random_date(rng, now, 90, 0),
            "updatedAt": now,
            "archived": is_archived,
        }

        # Optional fields are left out rather than stored as null
        if rng.random() > 0.15:
            todo["assignee"] = rng.choice(ASSIGNEES)
        if rng.random() > 0.25:
            todo["storyPoints"] = rng.randint(1, 13)
        if rng.random() > 0.4:
            todo["dueDate"] = _random_date(rng, now, -5, 30)
        if rng.random() > 0.6:
            todo["plannedDate"] = _random_date(rng, now, 0, 14)
        if is_completed:
            todo["completedAt"] = now
        if status == TodoStatus.COMPLETED_ERROR.value:
            todo["errorDetails"] = "Automated check failed during verification."
        if is_archived:
            todo["archivedAt"] = now

        todos.append(todo)

    return todos


def generate_todos_in_batches(
    total: int = SEED_TOTAL_TODOS,
    batch_size: int = SEED_BATCH_SIZE,
    rng: Optional[random.Random] = None,
):
    """Yield lists of generated TODOs, at most `batch_size` each."""
    remaining = total
    while remaining > 0:
        count = min(batch_size, remaining)
        yield generate_todos(count, rng=rng)
        remaining -= count
