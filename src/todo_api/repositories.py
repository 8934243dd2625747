from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Dict, List, Optional

from .models import TaskEntity, UserEntity
from .schemas import TaskCreate, TaskUpdate
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Only these fields may be changed by a partial update.
PATCHABLE_FIELDS = ("text", "completed")


# PUBLIC_INTERFACE
def apply_patch(existing: TaskEntity, patch: TaskUpdate) -> TaskEntity:
    """
    Return a copy of `existing` with the whitelisted fields that were explicitly
    provided in `patch` applied. id and created_at are never touched.
    """
    updated = existing.copy()
    provided = patch.model_fields_set
    for name in PATCHABLE_FIELDS:
        if name in provided:
            updated[name] = getattr(patch, name)  # type: ignore[literal-required]
    return updated


class MonotonicClock:
    """
    UTC clock whose readings strictly increase, so that creation order is
    preserved even when two tasks are created within the same clock tick.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for task storage backends."""

    @abstractmethod
    def create(self, data: TaskCreate) -> TaskEntity:
        """Create and return a new TaskEntity."""

    @abstractmethod
    def get(self, task_id: str) -> Optional[TaskEntity]:
        """Return a TaskEntity by id, or None if not found."""

    @abstractmethod
    def update(self, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        """Apply a partial update. Return the updated entity or None if not found."""

    @abstractmethod
    def delete(self, task_id: str) -> bool:
        """Delete a TaskEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self) -> List[TaskEntity]:
        """Return all TaskEntities, most recently created first."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserEntity]:
        """Return a UserEntity by id, or None if not found."""

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[UserEntity]:
        """Return the UserEntity with the given username, or None."""

    @abstractmethod
    def create_user(self, username: str, password_hash: str) -> UserEntity:
        """Create and return a new UserEntity."""


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self, clock: Optional[MonotonicClock] = None) -> None:
        self._lock = RLock()
        self._clock = clock or MonotonicClock()
        self._items: Dict[str, TaskEntity] = {}
        self._users: Dict[str, UserEntity] = {}

    def _allocate_id(self) -> str:
        with self._lock:
            while True:
                candidate = str(uuid.uuid4())
                if candidate not in self._items and candidate not in self._users:
                    return candidate

    def create(self, data: TaskCreate) -> TaskEntity:
        with self._lock:
            entity: TaskEntity = {
                "id": self._allocate_id(),
                "text": data.text,
                "completed": data.completed,
                "created_at": self._clock.now(),
            }
            self._items[entity["id"]] = entity
            logger.debug("Created task %s", entity["id"])
            return entity.copy()

    def get(self, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            return None if item is None else item.copy()

    def update(self, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._items.get(task_id)
            if existing is None:
                return None
            updated = apply_patch(existing, data)
            self._items[task_id] = updated
            logger.debug("Updated task %s (%s)", task_id, ", ".join(sorted(data.model_fields_set)))
            return updated.copy()

    def delete(self, task_id: str) -> bool:
        with self._lock:
            removed = self._items.pop(task_id, None) is not None
        if removed:
            logger.debug("Deleted task %s", task_id)
        return removed

    def list(self) -> List[TaskEntity]:
        with self._lock:
            items = sorted(self._items.values(), key=lambda t: t["created_at"], reverse=True)
            # Return copies to avoid external mutation
            return [t.copy() for t in items]

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._users.get(user_id)
            return None if user is None else user.copy()

    def get_user_by_username(self, username: str) -> Optional[UserEntity]:
        with self._lock:
            for user in self._users.values():
                if user["username"] == username:
                    return user.copy()
            return None

    def create_user(self, username: str, password_hash: str) -> UserEntity:
        with self._lock:
            user: UserEntity = {
                "id": self._allocate_id(),
                "username": username,
                "password_hash": password_hash,
            }
            self._users[user["id"]] = user
            return user.copy()


# PUBLIC_INTERFACE
def build_repository(settings: Optional[Settings] = None) -> Repository:
    """
    Factory to return the configured repository based on settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using sqlite backend at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path, timeout=settings.sqlite_timeout)
    logger.info("Using in-memory backend")
    return InMemoryRepository()
