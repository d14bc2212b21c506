from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from threading import RLock
from typing import Dict, List, Optional, Sequence

from .models import TodoEntity
from .schemas import TodoCreate, TodoUpdate
from .utils import new_todo_id


# PUBLIC_INTERFACE
class TodoRepository(ABC):
    """Abstract repository contract for todo storage backends."""

    @abstractmethod
    def create(self, data: TodoCreate) -> TodoEntity:
        """Create and return a new TodoEntity with a freshly assigned id."""

    @abstractmethod
    def get(self, todo_id: str) -> Optional[TodoEntity]:
        """Return a TodoEntity by id, or None if not found."""

    @abstractmethod
    def update(self, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        """Apply provided fields to an existing TodoEntity. Return updated entity or None if not found."""

    @abstractmethod
    def delete(self, todo_id: str) -> Optional[TodoEntity]:
        """Hard-delete a TodoEntity by id. Return the removed entity, or None if not found."""

    @abstractmethod
    def list(self, ids: Optional[Sequence[str]] = None) -> List[TodoEntity]:
        """
        Return todos newest-created-first.
        - ids=None returns every todo
        - otherwise only todos whose id is in ids; unknown ids are skipped
        """


def _copy(entity: TodoEntity) -> TodoEntity:
    out = entity.copy()
    out["dependencies"] = list(entity["dependencies"])
    out["tags"] = list(entity["tags"])
    return out


def apply_update(entity: TodoEntity, data: TodoUpdate) -> TodoEntity:
    """Return a copy of entity with the non-null fields of data applied."""
    updated = _copy(entity)
    if data.title is not None:
        updated["title"] = data.title
    if data.description is not None:
        updated["description"] = data.description
    if data.completed is not None:
        updated["completed"] = data.completed
    return updated


def entity_from_create(data: TodoCreate, created_at: datetime) -> TodoEntity:
    return {
        "id": new_todo_id(),
        "title": data.title,
        "description": data.description,
        "completed": data.completed,
        "due_date": data.due_date,
        "created_at": created_at,
        "dependencies": list(data.dependencies),
        "image": data.image,
        "tags": list(data.tags),
        "priority": data.priority,
    }


class InMemoryTodoRepository(TodoRepository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TodoEntity] = {}

    def _now(self) -> datetime:
        return datetime.now()

    def create(self, data: TodoCreate) -> TodoEntity:
        entity = entity_from_create(data, self._now())
        with self._lock:
            self._items[entity["id"]] = entity
        return _copy(entity)

    def get(self, todo_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._items.get(todo_id)
            return None if item is None else _copy(item)

    def update(self, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None:
                return None
            updated = apply_update(existing, data)
            self._items[todo_id] = updated
            return _copy(updated)

    def delete(self, todo_id: str) -> Optional[TodoEntity]:
        with self._lock:
            return self._items.pop(todo_id, None)

    def list(self, ids: Optional[Sequence[str]] = None) -> List[TodoEntity]:
        with self._lock:
            wanted = None if ids is None else set(ids)
            # insertion position breaks created_at ties
            indexed = [
                (pos, t)
                for pos, t in enumerate(self._items.values())
                if wanted is None or t["id"] in wanted
            ]
            indexed.sort(key=lambda p: (p[1]["created_at"], p[0]), reverse=True)
            return [_copy(t) for _, t in indexed]
