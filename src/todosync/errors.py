from __future__ import annotations


class TodoSyncError(Exception):
    """Base class for errors raised by the todo sync service."""


class TodoNotFoundError(TodoSyncError):
    """Requested todo does not exist."""

    def __init__(self, todo_id: str) -> None:
        super().__init__(f"Todo not found: {todo_id}")
        self.todo_id = todo_id


class MalformedIdentifierError(TodoSyncError, ValueError):
    """An identifier supplied by the caller is not in the expected format."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Malformed identifier: {value!r}")
        self.value = value


class StorageError(TodoSyncError):
    """The backing store is unreachable or rejected an operation."""
