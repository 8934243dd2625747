from __future__ import annotations

import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Generator, List, Optional

from .errors import StorageError, StorageUnavailableError
from .models import TaskEntity, UserEntity
from .repositories import MonotonicClock, Repository, apply_patch
from .schemas import TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    id: str = "id"
    text: str = "text"
    completed: str = "completed"
    created_at: str = "created_at"


@dataclass(frozen=True)
class _UserCols:
    table: str = "users"
    id: str = "id"
    username: str = "username"
    password_hash: str = "password_hash"


_COLS = _Cols()
_USERS = _UserCols()


class SQLiteRepository(Repository):
    """
    SQLite repository implementing the Repository interface.

    Every operation runs on its own connection. Writes run inside
    BEGIN IMMEDIATE so a read-modify-write update holds the database write
    lock from its read until commit. Driver errors are translated:
    OperationalError (locked or unreachable database) becomes
    StorageUnavailableError, any other sqlite3.Error becomes StorageError.
    """

    def __init__(self, db_path: str, timeout: float = 5.0, clock: Optional[MonotonicClock] = None) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._clock = clock or MonotonicClock()
        self._init_db()

    @contextmanager
    def _conn(self, write: bool = False) -> Generator[sqlite3.Connection, None, None]:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
            conn.row_factory = sqlite3.Row
            if write:
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if write and conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            if write:
                conn.execute("COMMIT")
        except sqlite3.OperationalError as e:
            logger.warning("SQLite backend unavailable: %s", e)
            raise StorageUnavailableError("storage backend unavailable") from e
        except sqlite3.Error as e:
            logger.error("SQLite backend error: %s", e)
            raise StorageError("storage backend error") from e
        finally:
            if conn is not None:
                conn.close()

    def _init_db(self) -> None:
        with self._conn(write=True) as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.text} TEXT NOT NULL,
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at})"
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_USERS.table} (
                    {_USERS.id} TEXT PRIMARY KEY,
                    {_USERS.username} TEXT NOT NULL UNIQUE,
                    {_USERS.password_hash} TEXT NOT NULL
                )
                """
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": str(row[_COLS.id]),
            "text": str(row[_COLS.text]),
            "completed": bool(row[_COLS.completed]),
            "created_at": datetime.fromisoformat(row[_COLS.created_at]),
        }

    def _row_to_user(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": str(row[_USERS.id]),
            "username": str(row[_USERS.username]),
            "password_hash": str(row[_USERS.password_hash]),
        }

    def _select(self, conn: sqlite3.Connection, task_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,)).fetchone()

    def create(self, data: TaskCreate) -> TaskEntity:
        entity: TaskEntity = {
            "id": str(uuid.uuid4()),
            "text": data.text,
            "completed": data.completed,
            "created_at": self._clock.now(),
        }
        with self._conn(write=True) as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.text}, {_COLS.completed}, {_COLS.created_at})
                VALUES (?, ?, ?, ?)
                """,
                (
                    entity["id"],
                    entity["text"],
                    1 if entity["completed"] else 0,
                    entity["created_at"].isoformat(timespec="microseconds"),
                ),
            )
        logger.debug("Created task %s", entity["id"])
        return entity

    def get(self, task_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            row = self._select(conn, task_id)
            return self._row_to_entity(row) if row else None

    def update(self, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        with self._conn(write=True) as conn:
            row = self._select(conn, task_id)
            if not row:
                return None
            updated = apply_patch(self._row_to_entity(row), data)
            conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.text} = ?, {_COLS.completed} = ?
                WHERE {_COLS.id} = ?
                """,
                (updated["text"], 1 if updated["completed"] else 0, task_id),
            )
        logger.debug("Updated task %s", task_id)
        return updated

    def delete(self, task_id: str) -> bool:
        with self._conn(write=True) as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,))
            removed = cur.rowcount > 0
        if removed:
            logger.debug("Deleted task %s", task_id)
        return removed

    def list(self) -> List[TaskEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} ORDER BY {_COLS.created_at} DESC, rowid DESC"
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT * FROM {_USERS.table} WHERE {_USERS.id} = ?", (user_id,)
            ).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT * FROM {_USERS.table} WHERE {_USERS.username} = ?", (username,)
            ).fetchone()
            return self._row_to_user(row) if row else None

    def create_user(self, username: str, password_hash: str) -> UserEntity:
        user: UserEntity = {"id": str(uuid.uuid4()), "username": username, "password_hash": password_hash}
        with self._conn(write=True) as conn:
            conn.execute(
                f"INSERT INTO {_USERS.table} ({_USERS.id}, {_USERS.username}, {_USERS.password_hash}) VALUES (?, ?, ?)",
                (user["id"], user["username"], user["password_hash"]),
            )
        return user
