"""In-memory sorted memtable implementation.

Uses sortedcontainers.SortedDict keyed by (key, -version) so that every
committed version of a key is retained and the newest sorts first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..core.types import Entry, Key, Version

# Approximate per-entry overhead of the SortedDict and tuple key
ENTRY_OVERHEAD = 48


class SimpleMemtable:
    """In-memory multi-version structure holding recent commits.

    Invariants:
        - Records are ordered by key ascending, then version descending
        - Every committed version is kept until the memtable is flushed
        - Size includes approximate overhead of data structures
    """

    def __init__(self):
        """Initialize empty memtable."""
        self._data: SortedDict = SortedDict()
        self._size_bytes: int = 0
        self._max_version: Version = 0

    def put(self, entry: Entry) -> None:
        """Insert a committed entry (value or tombstone)."""
        sort_key = entry.sort_key()
        if sort_key in self._data:
            # Replaying the same commit twice is a no-op
            return
        self._data[sort_key] = entry
        self._size_bytes += len(entry.key) + entry.value_size + ENTRY_OVERHEAD
        self._max_version = max(self._max_version, entry.version)

    def get(self, key: Key, max_version: Version) -> Entry | None:
        """Return the newest entry for key with version <= max_version.

        Tombstones are returned as-is; callers decide visibility.
        """
        for sort_key in self._data.irange(minimum=(key, -max_version)):
            if sort_key[0] != key:
                return None
            return self._data[sort_key]
        return None

    def scan(self, start: Key, max_version: Version) -> Iterator[Entry]:
        """Iterate entries with key >= start and version <= max_version.

        The matching range is copied when called, so later commits or a
        flush cannot change what the returned iterator yields.
        """
        entries = []
        for sort_key in self._data.irange(minimum=(start, float("-inf"))):
            entry = self._data[sort_key]
            if entry.version <= max_version:
                entries.append(entry)
        return iter(entries)

    def size_bytes(self) -> int:
        """Return approximate memory usage in bytes."""
        return self._size_bytes

    def max_version(self) -> Version:
        return self._max_version

    def clear(self) -> None:
        """Clear all entries (used after flush)."""
        self._data.clear()
        self._size_bytes = 0

    def items(self) -> Iterable[Entry]:
        """Return all entries in sorted order."""
        return list(self._data.values())

    def __len__(self) -> int:
        return len(self._data)
