from __future__ import annotations

from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ..backend import Backend, get_backend
from ..errors import TodoNotFoundError
from ..schemas import ChangelogOut, TodoCreate, TodoOut, TodoUpdate
from ..utils import parse_todo_id, parse_todo_ids

# largest value a SQLite INTEGER column can hold
MAX_VERSION = 2**63 - 1

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)


def _get_backend(backend: Backend = Depends(get_backend)) -> Backend:
    """
    Dependency wrapper for the backend to keep signatures clean.
    """
    return backend


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TodoOut],
    summary="List Todos",
    description=(
        "List todos newest-created-first. Repeat the id query parameter "
        "(?id=a&id=b) to restrict the result to those ids."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Malformed id"},
    },
)
def list_todos(
    ids: Optional[List[str]] = Query(None, alias="id", description="Restrict to these todo ids"),
    backend: Backend = Depends(_get_backend),
) -> List[TodoOut]:
    wanted = parse_todo_ids(ids) if ids else None
    return [TodoOut(**t) for t in backend.todos.list(wanted)]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/changelist",
    response_model=List[ChangelogOut],
    summary="Changes Since Version",
    description=(
        "Return changelog entries with a version greater than lastSyncedVersion, "
        "in ascending version order. Omit lastSyncedVersion to get the full history."
    ),
    responses={
        200: {"description": "Changes retrieved successfully"},
        400: {"description": "lastSyncedVersion is not an integer in [-1, 2**63 - 1]"},
    },
)
def get_changelist(
    last_synced_version: Optional[int] = Query(
        None,
        alias="lastSyncedVersion",
        ge=-1,
        le=MAX_VERSION,
        description="Highest version the client has already seen",
    ),
    backend: Backend = Depends(_get_backend),
) -> List[ChangelogOut]:
    entries = backend.coordinator.changes_since(last_synced_version)
    return [ChangelogOut(**e) for e in entries]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={
        200: {"description": "Todo found"},
        400: {"description": "Malformed id"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(todo_id: str, backend: Backend = Depends(_get_backend)) -> TodoOut:
    todo_id = parse_todo_id(todo_id)
    item = backend.todos.get(todo_id)
    if item is None:
        raise TodoNotFoundError(todo_id)
    return TodoOut(**item)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=List[TodoOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create Todos",
    description=(
        "Create one todo (object body) or several (array body). Each created todo "
        "gets its own changelog entry, in array order. The response is always a list."
    ),
    responses={
        201: {"description": "Todos created successfully"},
        400: {"description": "Missing body or validation error"},
    },
)
def create_todos(
    payload: Union[List[TodoCreate], TodoCreate, None] = Body(default=None),
    backend: Backend = Depends(_get_backend),
) -> List[TodoOut]:
    """
    Items are stored one at a time. If storage fails midway, the items
    already created keep their todos and changelog entries.
    """
    if payload is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body is required")

    items = payload if isinstance(payload, list) else [payload]
    created: List[TodoOut] = []
    for data in items:
        todo = backend.todos.create(data)
        backend.coordinator.record_create(todo)
        created.append(TodoOut(**todo))  # type: ignore[arg-type]
    return created


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description="Partially update title, description and/or completed of a Todo item.",
    responses={
        200: {"description": "Todo updated"},
        400: {"description": "Malformed id or validation error"},
        404: {"description": "Todo not found"},
    },
)
def patch_todo(todo_id: str, payload: TodoUpdate, backend: Backend = Depends(_get_backend)) -> TodoOut:
    todo_id = parse_todo_id(todo_id)
    updated = backend.todos.update(todo_id, payload)
    if updated is None:
        raise TodoNotFoundError(todo_id)
    backend.coordinator.record_update(updated)
    return TodoOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    summary="Delete Todo",
    description="Hard-delete a Todo item by ID. A tombstone is written to the changelog.",
    responses={
        200: {"description": "Todo deleted"},
        400: {"description": "Malformed id"},
        404: {"description": "Todo not found"},
    },
)
def delete_todo(todo_id: str, backend: Backend = Depends(_get_backend)) -> dict:
    todo_id = parse_todo_id(todo_id)
    removed = backend.todos.delete(todo_id)
    if removed is None:
        raise TodoNotFoundError(todo_id)
    backend.coordinator.record_delete(removed)
    return {"message": "Todo deleted"}
