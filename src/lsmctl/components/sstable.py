"""SSTable implementation with bloom filter and sparse index.

Provides immutable sorted tables of versioned entries.
"""

from __future__ import annotations

import json
import logging
import os
import struct
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.errors import SSTableError
from ..core.types import FLAG_DELETE, Entry
from .bloom import SimpleBloomFilter
from .index import SimpleSSTableIndex

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..core.types import Key, SSTableMeta, Version

logger = logging.getLogger(__name__)

# Record format:
# [flags(1B)][user_meta(1B)][version(8B)][expires_at(8B)][key_len(4B)][value_len(4B)][key][value]
RECORD_HEADER = struct.Struct("<BBQQII")
META_LEN = struct.Struct("<I")


def _read_record(f, with_value: bool = True) -> Entry | None:
    """Read one record at the current position, or None at EOF."""
    raw = f.read(RECORD_HEADER.size)
    if len(raw) < RECORD_HEADER.size:
        if raw:
            raise SSTableError("Truncated record header")
        return None

    flags, user_meta, version, expires_at, key_len, value_len = RECORD_HEADER.unpack(raw)
    key = f.read(key_len)
    if len(key) < key_len:
        raise SSTableError("Truncated record key")

    if with_value:
        value = f.read(value_len)
        if len(value) < value_len:
            raise SSTableError("Truncated record value")
    else:
        f.seek(value_len, os.SEEK_CUR)
        value = None

    return Entry(key, version, value, value_len, user_meta, expires_at, bool(flags & FLAG_DELETE))


class SimpleSSTableWriter:
    """Write sorted entries to an immutable SSTable file.

    Args:
        data_path: Path for .data file
        meta_path: Path for .meta file
        bloom_fpr: False positive rate for bloom filter
        index_interval: Sample every N records for sparse index

    Invariants:
        - Entries must be added ordered by key, then newest version first
        - The meta file is written last, so a table without one is incomplete
    """

    def __init__(
        self,
        data_path: str | Path,
        meta_path: str | Path,
        bloom_fpr: float = 0.01,
        index_interval: int = 100,
    ):
        self.data_path = Path(data_path)
        self.meta_path = Path(meta_path)
        self.bloom_fpr = bloom_fpr
        self.index_interval = index_interval

        self.data_path.parent.mkdir(parents=True, exist_ok=True)
        self._fd = open(self.data_path, "wb")

        self._min_key: Key | None = None
        self._max_key: Key | None = None
        self._min_version: Version | None = None
        self._max_version: Version | None = None
        self._count = 0
        self._last: tuple[Key, int] | None = None
        self._index: list[tuple[Key, int]] = []
        self._keys_for_bloom: list[Key] = []

    def add(self, entry: Entry) -> None:
        """Append an entry (must be added in sorted order)."""
        sort_key = entry.sort_key()
        if self._last is not None and sort_key <= self._last:
            raise SSTableError(f"Entries must be added in sorted order: {self._last} >= {sort_key}")
        if entry.value is None:
            raise SSTableError(f"Entry for {entry.key!r} has no loaded value")

        offset = self._fd.tell()

        if self._min_key is None:
            self._min_key = entry.key
        self._max_key = entry.key
        if self._min_version is None:
            self._min_version = self._max_version = entry.version
        else:
            self._min_version = min(self._min_version, entry.version)
            self._max_version = max(self._max_version, entry.version)

        if self._count % self.index_interval == 0:
            self._index.append((entry.key, offset))
        if self._last is None or self._last[0] != entry.key:
            self._keys_for_bloom.append(entry.key)

        self._fd.write(
            RECORD_HEADER.pack(
                entry.flags,
                entry.user_meta,
                entry.version,
                entry.expires_at,
                len(entry.key),
                len(entry.value),
            )
        )
        self._fd.write(entry.key)
        self._fd.write(entry.value)

        self._count += 1
        self._last = sort_key

    def size_bytes(self) -> int:
        return self._fd.tell() if self._fd else 0

    def finalize(self) -> SSTableMeta:
        """Flush data, write index and filter. Return metadata for the catalog."""
        if self._fd is None:
            raise SSTableError("Writer already finalized")

        self._fd.flush()
        os.fsync(self._fd.fileno())
        self._fd.close()
        self._fd = None

        data_size = self.data_path.stat().st_size

        bloom = SimpleBloomFilter(len(self._keys_for_bloom), self.bloom_fpr)
        for key in self._keys_for_bloom:
            bloom.add(key)

        meta: SSTableMeta = {
            "data_file": self.data_path.name,
            "meta_file": self.meta_path.name,
            "min_key": self._min_key.hex() if self._min_key is not None else None,
            "max_key": self._max_key.hex() if self._max_key is not None else None,
            "min_version": self._min_version,
            "max_version": self._max_version,
            "count": self._count,
            "data_size": data_size,
            "index": [(k.hex(), offset) for k, offset in self._index],
        }

        with open(self.meta_path, "wb") as f:
            json_bytes = json.dumps(meta).encode("utf-8")
            f.write(META_LEN.pack(len(json_bytes)))
            f.write(json_bytes)
            f.write(bloom.serialize())
            f.flush()
            os.fsync(f.fileno())

        logger.info(f"Finalized SSTable {self.data_path.name}: {self._count} records, {data_size} bytes")
        return meta


class SimpleSSTableReader:
    """Read from an immutable SSTable file.

    Args:
        data_path: Path to .data file
        meta_path: Path to .meta file

    Invariants:
        - Files are immutable after creation
        - Bloom filter false negatives are impossible
    """

    def __init__(self, data_path: str | Path, meta_path: str | Path):
        self.data_path = Path(data_path)
        self.meta_path = Path(meta_path)

        try:
            with open(self.meta_path, "rb") as f:
                json_len = META_LEN.unpack(f.read(META_LEN.size))[0]
                self.meta = json.loads(f.read(json_len).decode("utf-8"))
                self._bloom = SimpleBloomFilter.deserialize(f.read())
        except (OSError, ValueError, struct.error) as e:
            raise SSTableError(f"Failed to load SSTable meta {self.meta_path}: {e}") from e

        self._index = SimpleSSTableIndex(
            [(bytes.fromhex(k), offset) for k, offset in self.meta["index"]]
        )
        self._min_key = bytes.fromhex(self.meta["min_key"]) if self.meta["min_key"] is not None else None
        self._max_key = bytes.fromhex(self.meta["max_key"]) if self.meta["max_key"] is not None else None
        self._fd = None

    def _ensure_open(self) -> None:
        """Lazily open data file."""
        if self._fd is None:
            self._fd = open(self.data_path, "rb")

    def may_contain(self, key: Key) -> bool:
        """Use key range and bloom filter to test potential presence."""
        if self._min_key is None or key < self._min_key or key > self._max_key:
            return False
        return key in self._bloom

    def get(self, key: Key, max_version: Version) -> Entry | None:
        """Return the newest entry for key with version <= max_version."""
        if not self.may_contain(key):
            return None

        self._ensure_open()
        self._fd.seek(self._index.find_block_offset(key))

        while True:
            entry = _read_record(self._fd, with_value=False)
            if entry is None or entry.key > key:
                return None
            if entry.key == key and entry.version <= max_version:
                # Re-read the value now that the record is known to match
                self._fd.seek(-entry.value_size, os.SEEK_CUR)
                value = self._fd.read(entry.value_size)
                return Entry(
                    entry.key,
                    entry.version,
                    value,
                    entry.value_size,
                    entry.user_meta,
                    entry.expires_at,
                    entry.deleted,
                )

    def scan(
        self, start: Key, max_version: Version, with_values: bool = True
    ) -> Iterator[Entry]:
        """Iterate entries with key >= start and version <= max_version.

        Each scan opens its own file handle when called, so scans may
        interleave and survive the table being unlinked by compaction.
        """
        if self._max_key is None or start > self._max_key:
            return iter(())

        f = open(self.data_path, "rb")
        f.seek(self._index.find_block_offset(start))
        return self._iter_records(f, start, max_version, with_values)

    @staticmethod
    def _iter_records(
        f, start: Key, max_version: Version, with_values: bool
    ) -> Iterator[Entry]:
        with f:
            while True:
                entry = _read_record(f, with_value=with_values)
                if entry is None:
                    break
                if entry.key < start or entry.version > max_version:
                    continue
                yield entry

    def close(self) -> None:
        """Release file descriptors."""
        if self._fd:
            self._fd.close()
            self._fd = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

