# backend/todo_manager/core/constants.py

API_BASE_PATH = "/api/custom_plugin"

# Pagination / sorting
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
DEFAULT_SORT_FIELD = "createdAt"
DEFAULT_SORT_ORDER = "desc"

SORTABLE_FIELDS = (
    "createdAt",
    "updatedAt",
    "plannedDate",
    "dueDate",
    "completedAt",
    "archivedAt",
    "title",
    "status",
    "priority",
    "assignee",
    "storyPoints",
    "position",
    "_score",
)

# Kanban column ordering: new items land one step after the current max
POSITION_STEP = 1000

# Full-text match weights
TEXT_SEARCH_BOOSTS = {"title": 2, "description": 1}

# Test-data seeding
SEED_TOTAL_TODOS = 3999
SEED_BATCH_SIZE = 500
SEED_MAX_TODOS = 10000
