"""
Sync coordination between the todo store and the changelog.

The request layer mutates the todo store first and, once the mutation has
succeeded, calls exactly one record_* method. Each record_* call performs
exactly one changelog append and never touches the todo store.

Known limitation:
    The todo store and the changelog are written separately. If the append
    fails after the todo mutation was committed, that mutation has no
    changelog entry. The failure is logged and re-raised as StorageError;
    nothing is retried or rolled back.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .changelog import ChangelogStore, VersionSequencer
from .errors import StorageError
from .models import RESOURCE_TYPE_TODO, ChangelogEntity, TodoEntity

logger = logging.getLogger(__name__)

# Watermark used when a client has never synced; lower than the first version.
FULL_HISTORY = -1


# PUBLIC_INTERFACE
class SyncCoordinator:
    """Writes one changelog entry per todo mutation and serves the sync read path."""

    def __init__(self, changelog: ChangelogStore, sequencer: VersionSequencer) -> None:
        self._changelog = changelog
        self._sequencer = sequencer

    def _now(self) -> datetime:
        return datetime.now()

    def _record(self, todo: TodoEntity, is_deleted: bool) -> ChangelogEntity:
        def build(version: int) -> ChangelogEntity:
            return {
                "resource_id": todo["id"],
                "resource_type": RESOURCE_TYPE_TODO,
                "version": version,
                "is_deleted": is_deleted,
                "created_at": self._now(),
            }

        try:
            stored = self._changelog.append_next(self._sequencer, build)
        except StorageError:
            logger.error(
                "Changelog write failed after committed mutation of todo %s (deleted=%s)",
                todo["id"],
                is_deleted,
            )
            raise
        logger.debug(
            "Recorded change of todo %s at version %d (deleted=%s)",
            stored["resource_id"],
            stored["version"],
            stored["is_deleted"],
        )
        return stored

    def record_create(self, todo: TodoEntity) -> ChangelogEntity:
        """Record the creation of one todo. Batches call this once per item, in order."""
        return self._record(todo, is_deleted=False)

    def record_update(self, todo: TodoEntity) -> ChangelogEntity:
        """Record one update request, however many fields it changed."""
        return self._record(todo, is_deleted=False)

    def record_delete(self, todo: TodoEntity) -> ChangelogEntity:
        """
        Record a hard delete as a tombstone entry.

        Only call this after the todo store confirmed the delete; a delete of
        a missing todo must not reach the changelog.
        """
        return self._record(todo, is_deleted=True)

    def changes_since(self, version: Optional[int] = None) -> List[ChangelogEntity]:
        """
        Return changelog entries with a version greater than the watermark,
        oldest first. Without a watermark the full history is returned.
        """
        watermark = FULL_HISTORY if version is None else version
        return self._changelog.find_since(watermark)
