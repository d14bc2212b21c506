from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import parse_todo_ids

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]

DEFAULT_PRIORITY = "medium"


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Normalize due_date input into a datetime.
    - Strings are parsed as ISO8601 datetime first, then as a date at 00:00.
    - A date (not datetime) is promoted to 00:00 on that day.
    """
    if value is None or isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, str):
        s = value.strip()
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(
                    "Invalid due_date format. Use ISO8601 date or datetime string "
                    "(e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e
            return datetime(d.year, d.month, d.day)

    raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


def _clean_description(v: Optional[str]) -> Optional[str]:
    return v.strip() if v is not None else None


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item. Unknown fields are ignored.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "due_date": "2025-02-01",
                "tags": ["home"],
                "priority": "high",
            }
        }
    )

    title: str = Field(..., description="Short title for the todo item")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: bool = Field(default=False, description="Completion status flag")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )
    dependencies: List[str] = Field(
        default_factory=list,
        description="Ids of todos this one depends on. Not checked for existence.",
    )
    image: Optional[str] = Field(default=None, description="Opaque image reference")
    tags: List[str] = Field(default_factory=list, description="Distinct tag strings")
    priority: str = Field(default=DEFAULT_PRIORITY, description="Priority label")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _clean_title(v)  # type: ignore[return-value]

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v: List[str]) -> List[str]:
        """
        Only the id format is checked; a dependency may name a todo that
        never existed or has been deleted.
        """
        return parse_todo_ids(v)

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v: Optional[str]) -> str:
        # null or blank falls back to the default
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_PRIORITY
        return v


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for partially updating an existing Todo item.

    Only title, description and completed are mutable; other fields are
    ignored. Omitted or null fields are left unchanged.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries and supplies",
                "completed": True,
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the todo item")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    id: str = Field(..., description="Unique identifier of the todo item")
    title: str = Field(..., description="Short title for the todo item")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: bool = Field(..., description="Completion status flag")
    due_date: Optional[datetime] = Field(default=None, description="Due date/time as ISO8601")
    created_at: datetime = Field(..., description="Creation timestamp")
    dependencies: List[str] = Field(default_factory=list, description="Ids of dependency todos")
    image: Optional[str] = Field(default=None, description="Opaque image reference")
    tags: List[str] = Field(default_factory=list, description="Tags")
    priority: str = Field(..., description="Priority label")


# PUBLIC_INTERFACE
class ChangelogOut(BaseModel):
    """
    Schema returned by the changelist endpoint for a single changelog entry.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "resource_id": "3f2c9a7e0b9d4e1f8a6b5c4d3e2f1a0b",
                "resource_type": "todo",
                "version": 4,
                "is_deleted": False,
                "created_at": "2025-01-25T10:15:30.123456",
            }
        }
    )

    resource_id: str = Field(..., description="Id of the mutated resource")
    resource_type: str = Field(..., description="Resource type tag")
    version: int = Field(..., description="Global sequence number of the change")
    is_deleted: bool = Field(..., description="True when the change is a deletion")
    created_at: datetime = Field(..., description="When the change was recorded")
