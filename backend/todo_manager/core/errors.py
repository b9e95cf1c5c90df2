# backend/todo_manager/core/errors.py


class TodoNotFoundError(LookupError):
    """
    Raised when a TODO id has no stored record.
    The message always contains "not found"; the route layer maps it to 404.
    """

    def __init__(self, todo_id: str):
        self.todo_id = todo_id
        super().__init__(f"TODO item not found: {todo_id}")
