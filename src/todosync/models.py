from __future__ import annotations

from datetime import datetime
from typing import List, Optional, TypedDict

RESOURCE_TYPE_TODO = "todo"


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item for non-ORM storage
    backends.

    Fields:
    - id: Opaque unique identifier (32-char hex), immutable
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Optional detailed description
    - completed: Boolean completion flag
    - due_date: Optional due datetime (normalized to datetime in schemas)
    - created_at: Creation timestamp, set once
    - dependencies: Ids of other todos; weak references, may dangle
    - image: Optional opaque image reference
    - tags: Distinct tag strings
    - priority: Free-form priority, "medium" unless given
    """

    id: str
    title: str
    description: Optional[str]
    completed: bool
    due_date: Optional[datetime]
    created_at: datetime
    dependencies: List[str]
    image: Optional[str]
    tags: List[str]
    priority: str


# PUBLIC_INTERFACE
class ChangelogEntity(TypedDict):
    """
    One immutable mutation record in the changelog.

    Fields:
    - resource_id: Id of the mutated todo
    - resource_type: Always "todo" for now
    - version: Globally unique, strictly increasing sequence number
    - is_deleted: True only for deletion events
    - created_at: Timestamp of the changelog write
    """

    resource_id: str
    resource_type: str
    version: int
    is_deleted: bool
    created_at: datetime
