from todo_manager.crud.todos import TodoService
from todo_manager.db.mongo import get_todos_collection
from todo_manager.db.store import TodoStore


def get_todo_store() -> TodoStore:
    """
    Wraps the process-wide motor client's TODO collection.
    """
    return TodoStore(get_todos_collection())


def get_todo_service() -> TodoService:
    return TodoService(get_todo_store())
