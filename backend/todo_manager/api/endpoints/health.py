# backend/todo_manager/api/endpoints/health.py

import logging

from fastapi import APIRouter, Depends

from todo_manager.api.deps import get_todo_store
from todo_manager.db.store import TodoStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(store: TodoStore = Depends(get_todo_store)):
    """
    [Ops] Liveness plus a round-trip to the database holding the TODO collection.
    Always 200; an unreachable store reports "degraded".
    """
    report = {"status": "ok", "collection": store.name, "mongo": True, "mongo_error": None}
    try:
        await store.ping()
    except Exception as exc:
        logger.warning("Health check: store ping failed: %s", exc)
        report.update(status="degraded", mongo=False, mongo_error=str(exc))
    return report
