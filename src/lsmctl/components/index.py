"""SSTable index implementation.

Sparse in-memory index over sampled record offsets.
"""

from __future__ import annotations

from bisect import bisect_left

from ..core.types import Key


class SimpleSSTableIndex:
    """In-memory sparse index for SSTable.

    Args:
        index_entries: List of (key, offset) tuples in file order

    Several samples may share a key when a key has many versions, so lookups
    start at the last sample strictly before the key.
    """

    def __init__(self, index_entries: list[tuple[Key, int]]):
        self._keys = [k for k, _ in index_entries]
        self._offsets = [offset for _, offset in index_entries]

    def find_block_offset(self, key: Key) -> int:
        """Return a file offset at or before the first record for key."""
        pos = bisect_left(self._keys, key)
        if pos == 0:
            return 0
        return self._offsets[pos - 1]

    def __len__(self) -> int:
        return len(self._keys)
