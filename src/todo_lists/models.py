from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class TodoListRecord(TypedDict):
    """
    A todo list row as persisted by the record stores.

    Fields:
    - id: Unique integer identifier, assigned by the store and never reused
    - owner_id: Id of the owning user; immutable after creation
    - title: Non-empty title
    - description: Optional detailed description
    - scheduled_at: Optional "doing at" timestamp
    - created_at: Creation timestamp, set once by the store
    - updated_at: Last mutation timestamp, set by the store
    """

    id: int
    owner_id: int
    title: str
    description: Optional[str]
    scheduled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class NewTodoList:
    """
    Fields supplied by the owner when creating a record.
    """
    owner_id: int
    title: str
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None


@dataclass(frozen=True)
class TodoListPatch:
    """
    Full-replace update of the mutable fields. owner_id is not patchable.
    """
    title: str
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
