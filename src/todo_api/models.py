from __future__ import annotations

from datetime import datetime
from typing import TypedDict


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A lightweight domain model representing a Task for the storage backends.

    Fields:
    - id: UUID4 string, generated by the store on creation
    - text: Task description (trimmed and non-empty via schemas)
    - completed: Boolean completion flag
    - created_at: UTC creation timestamp (timezone-aware datetime)
    """

    id: str
    text: str
    completed: bool
    created_at: datetime


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    A user account record. Stored alongside tasks but not exposed over HTTP.
    """

    id: str
    username: str
    password_hash: str
