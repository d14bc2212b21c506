"""
Changelog ledger and version sequencing.

Every todo mutation is mirrored by exactly one ChangelogEntity. Entries are
append-only and carry a global version number handed out by a
VersionSequencer. Sync clients poll find_since(watermark) to learn which
todos changed after the last version they saw.

Invariants:
    - Versions are unique across the whole store and strictly increasing
      in allocation order, starting at 0.
    - Entries are never modified or removed once appended.
    - find_since returns entries in ascending version order.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Lock, RLock
from typing import Callable, Dict, List, Optional

from .errors import StorageError
from .models import ChangelogEntity

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class ChangelogStore(ABC):
    """Append-only store of changelog entries."""

    @abstractmethod
    def append(self, entry: ChangelogEntity) -> ChangelogEntity:
        """
        Persist a new entry and return the stored copy.

        Raises:
            StorageError: if the store is unreachable or the version is taken.
        """

    @abstractmethod
    def append_next(
        self, sequencer: VersionSequencer, build: Callable[[int], ChangelogEntity]
    ) -> ChangelogEntity:
        """
        Allocate a version from sequencer, build the entry for it and append
        it as one atomic step. No other entry can be allocated or become
        visible between the allocation and the append, so readers always see
        versions in allocation order.
        """

    @abstractmethod
    def find_since(self, version: int) -> List[ChangelogEntity]:
        """Return all entries with entry.version > version, oldest first."""

    @abstractmethod
    def latest(self) -> Optional[ChangelogEntity]:
        """Return the entry with the highest version, or None when empty."""


# PUBLIC_INTERFACE
class VersionSequencer(ABC):
    """Hands out changelog version numbers."""

    @abstractmethod
    def next_version(self) -> int:
        """
        Return one more than the highest version allocated so far, or 0 for
        an empty changelog. Concurrent callers never receive the same value.
        """


class InMemoryChangelogStore(ChangelogStore):
    """
    Thread-safe in-memory changelog keyed by version.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._entries: Dict[int, ChangelogEntity] = {}

    def append(self, entry: ChangelogEntity) -> ChangelogEntity:
        with self._lock:
            if entry["version"] in self._entries:
                raise StorageError(f"changelog version {entry['version']} already exists")
            stored = entry.copy()
            self._entries[stored["version"]] = stored
            return stored.copy()

    def append_next(
        self, sequencer: VersionSequencer, build: Callable[[int], ChangelogEntity]
    ) -> ChangelogEntity:
        with self._lock:
            return self.append(build(sequencer.next_version()))

    def find_since(self, version: int) -> List[ChangelogEntity]:
        with self._lock:
            return [
                self._entries[v].copy()
                for v in sorted(self._entries)
                if v > version
            ]

    def latest(self) -> Optional[ChangelogEntity]:
        with self._lock:
            if not self._entries:
                return None
            return self._entries[max(self._entries)].copy()


class InMemoryVersionSequencer(VersionSequencer):
    """
    Lock-protected counter. It is seeded once from the changelog's latest
    entry at construction, then incremented in-process without reading the
    store again, so next_version never takes the store's lock.
    """

    def __init__(self, store: ChangelogStore) -> None:
        self._lock = Lock()
        latest = store.latest()
        self._last = latest["version"] if latest is not None else -1
        logger.debug("Version sequencer seeded at %d", self._last)

    def next_version(self) -> int:
        with self._lock:
            self._last += 1
            return self._last
