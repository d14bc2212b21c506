from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from .changelog import ChangelogStore, InMemoryChangelogStore, InMemoryVersionSequencer, VersionSequencer
from .repositories import InMemoryTodoRepository, TodoRepository
from .settings import Settings, get_settings
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Backend:
    """The todo store, changelog and coordinator wired over one persistence backend."""

    name: str
    todos: TodoRepository
    changelog: ChangelogStore
    sequencer: VersionSequencer
    coordinator: SyncCoordinator


# PUBLIC_INTERFACE
def memory_backend() -> Backend:
    """Return a fresh, empty in-memory backend."""
    changelog = InMemoryChangelogStore()
    sequencer = InMemoryVersionSequencer(changelog)
    return Backend(
        name="memory",
        todos=InMemoryTodoRepository(),
        changelog=changelog,
        sequencer=sequencer,
        coordinator=SyncCoordinator(changelog, sequencer),
    )


# PUBLIC_INTERFACE
def sqlite_backend(db_path: str) -> Backend:
    """Return a backend persisting todos and changelog in one SQLite file."""
    from .db import SQLiteChangelogStore, SQLiteDatabase, SQLiteTodoRepository, SQLiteVersionSequencer

    db = SQLiteDatabase(db_path)
    changelog = SQLiteChangelogStore(db)
    sequencer = SQLiteVersionSequencer(db)
    return Backend(
        name="sqlite",
        todos=SQLiteTodoRepository(db),
        changelog=changelog,
        sequencer=sequencer,
        coordinator=SyncCoordinator(changelog, sequencer),
    )


# PUBLIC_INTERFACE
def build_backend(settings: Settings) -> Backend:
    """
    Build the backend selected by settings.
    - memory: in-process dict stores, lost on restart
    - sqlite: single database file at settings.sqlite_db_path
    """
    if settings.persistence_backend == "sqlite":
        logger.info("Using sqlite backend at %s", settings.sqlite_db_path)
        return sqlite_backend(settings.sqlite_db_path)
    logger.info("Using in-memory backend")
    return memory_backend()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_backend() -> Backend:
    """FastAPI dependency returning the process-wide backend."""
    return build_backend(get_settings())
