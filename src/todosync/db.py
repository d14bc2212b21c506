"""
SQLite storage backend.

One database file holds three tables:

    todos:      one row per live todo; list fields stored as JSON text
    changelog:  append-only change records, UNIQUE(version)
    sequences:  named counters; the 'changelog' row holds the last
                version handed out

Version allocation runs inside a BEGIN IMMEDIATE transaction, which takes
the database write lock up front. Two processes or threads allocating at
once are serialized by SQLite and always see each other's increment.
SQLiteChangelogStore.append_next runs the increment and the changelog INSERT
in that same transaction, so entries commit in version order.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Generator, List, Optional, Sequence

from .changelog import ChangelogStore, VersionSequencer
from .errors import StorageError
from .models import ChangelogEntity, TodoEntity
from .repositories import TodoRepository, apply_update, entity_from_create
from .schemas import TodoCreate, TodoUpdate

logger = logging.getLogger(__name__)

CHANGELOG_SEQUENCE = "changelog"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS todos (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    due_date TEXT NULL,
    created_at TEXT NOT NULL,
    dependencies TEXT NOT NULL DEFAULT '[]',
    image TEXT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    priority TEXT NOT NULL DEFAULT 'medium'
);
CREATE INDEX IF NOT EXISTS idx_todos_created_at ON todos(created_at);

CREATE TABLE IF NOT EXISTS changelog (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource_id TEXT NOT NULL,
    resource_type TEXT NOT NULL DEFAULT 'todo',
    version INTEGER NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_changelog_version ON changelog(version);
CREATE INDEX IF NOT EXISTS idx_changelog_resource ON changelog(resource_id);

CREATE TABLE IF NOT EXISTS sequences (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value is not None else None


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


class SQLiteDatabase:
    """
    Owns the database file and hands out short-lived connections.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._init_db()

    @contextmanager
    def connect(self, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """
        Yield a connection that commits on success and rolls back on error.

        With immediate=True the transaction is opened with BEGIN IMMEDIATE so
        the write lock is held from the first statement. sqlite3 errors are
        re-raised as StorageError.
        """
        try:
            conn = sqlite3.connect(
                self._db_path,
                timeout=self._timeout,
                isolation_level=None if immediate else "",
            )
        except sqlite3.Error as e:
            raise StorageError(f"cannot open database {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(str(e)) from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(_SCHEMA)
        logger.info("SQLite database ready at %s", self._db_path)


class SQLiteTodoRepository(TodoRepository):
    """
    SQLite repository implementing the TodoRepository interface.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        return {
            "id": str(row["id"]),
            "title": str(row["title"]),
            "description": row["description"],
            "completed": bool(row["completed"]),
            "due_date": _dt_in(row["due_date"]),
            "created_at": _dt_in(row["created_at"]),  # type: ignore[typeddict-item]
            "dependencies": json.loads(row["dependencies"]),
            "image": row["image"],
            "tags": json.loads(row["tags"]),
            "priority": str(row["priority"]),
        }

    def _select(self, conn: sqlite3.Connection, todo_id: str) -> Optional[TodoEntity]:
        row = conn.execute("SELECT * FROM todos WHERE id = ?", (todo_id,)).fetchone()
        return self._row_to_entity(row) if row else None

    def create(self, data: TodoCreate) -> TodoEntity:
        entity = entity_from_create(data, datetime.now())
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO todos (id, title, description, completed, due_date, created_at,
                    dependencies, image, tags, priority)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entity["id"],
                    entity["title"],
                    entity["description"],
                    1 if entity["completed"] else 0,
                    _dt_out(entity["due_date"]),
                    _dt_out(entity["created_at"]),
                    json.dumps(entity["dependencies"]),
                    entity["image"],
                    json.dumps(entity["tags"]),
                    entity["priority"],
                ),
            )
            stored = self._select(conn, entity["id"])
        assert stored is not None
        return stored

    def get(self, todo_id: str) -> Optional[TodoEntity]:
        with self._db.connect() as conn:
            return self._select(conn, todo_id)

    def update(self, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        with self._db.connect() as conn:
            current = self._select(conn, todo_id)
            if current is None:
                return None
            updated = apply_update(current, data)
            conn.execute(
                "UPDATE todos SET title = ?, description = ?, completed = ? WHERE id = ?",
                (
                    updated["title"],
                    updated["description"],
                    1 if updated["completed"] else 0,
                    todo_id,
                ),
            )
            return self._select(conn, todo_id)

    def delete(self, todo_id: str) -> Optional[TodoEntity]:
        with self._db.connect() as conn:
            current = self._select(conn, todo_id)
            if current is None:
                return None
            conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
            return current

    def list(self, ids: Optional[Sequence[str]] = None) -> List[TodoEntity]:
        params: list = []
        where_sql = ""
        if ids is not None:
            if not ids:
                return []
            where_sql = f"WHERE id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)

        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM todos {where_sql} ORDER BY created_at DESC, rowid DESC",
                params,
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]


class SQLiteChangelogStore(ChangelogStore):
    """
    Changelog table; the UNIQUE index on version rejects a duplicate append.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def _row_to_entry(self, row: sqlite3.Row) -> ChangelogEntity:
        return {
            "resource_id": str(row["resource_id"]),
            "resource_type": str(row["resource_type"]),
            "version": int(row["version"]),
            "is_deleted": bool(row["is_deleted"]),
            "created_at": _dt_in(row["created_at"]),  # type: ignore[typeddict-item]
        }

    def _insert(self, conn: sqlite3.Connection, entry: ChangelogEntity) -> ChangelogEntity:
        conn.execute(
            """
            INSERT INTO changelog (resource_id, resource_type, version, is_deleted, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                entry["resource_id"],
                entry["resource_type"],
                entry["version"],
                1 if entry["is_deleted"] else 0,
                _dt_out(entry["created_at"]),
            ),
        )
        row = conn.execute(
            "SELECT * FROM changelog WHERE version = ?", (entry["version"],)
        ).fetchone()
        return self._row_to_entry(row)

    def append(self, entry: ChangelogEntity) -> ChangelogEntity:
        with self._db.connect() as conn:
            return self._insert(conn, entry)

    def append_next(
        self, sequencer: VersionSequencer, build: Callable[[int], ChangelogEntity]
    ) -> ChangelogEntity:
        """
        The counter increment and the INSERT share one BEGIN IMMEDIATE
        transaction; if the INSERT fails the increment is rolled back too.
        """
        if not isinstance(sequencer, SQLiteVersionSequencer):
            raise TypeError("SQLiteChangelogStore.append_next needs a SQLiteVersionSequencer")
        with self._db.connect(immediate=True) as conn:
            return self._insert(conn, build(sequencer.allocate(conn)))

    def find_since(self, version: int) -> List[ChangelogEntity]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM changelog WHERE version > ? ORDER BY version ASC", (version,)
            ).fetchall()
            return [self._row_to_entry(r) for r in rows]

    def latest(self) -> Optional[ChangelogEntity]:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM changelog ORDER BY version DESC LIMIT 1"
            ).fetchone()
            return self._row_to_entry(row) if row else None


class SQLiteVersionSequencer(VersionSequencer):
    """
    Counter row in the sequences table, incremented under the write lock.

    The row is created on first use from the highest version already in the
    changelog, so a database written before the counter existed continues
    its sequence instead of restarting at 0.
    """

    def __init__(self, db: SQLiteDatabase, name: str = CHANGELOG_SEQUENCE) -> None:
        self._db = db
        self._name = name

    def allocate(self, conn: sqlite3.Connection) -> int:
        """Increment the counter on conn, which must already hold the write lock."""
        conn.execute(
            """
            INSERT OR IGNORE INTO sequences (name, value)
            SELECT ?, COALESCE(MAX(version), -1) FROM changelog
            """,
            (self._name,),
        )
        conn.execute("UPDATE sequences SET value = value + 1 WHERE name = ?", (self._name,))
        row = conn.execute("SELECT value FROM sequences WHERE name = ?", (self._name,)).fetchone()
        return int(row["value"])

    def next_version(self) -> int:
        with self._db.connect(immediate=True) as conn:
            return self.allocate(conn)
