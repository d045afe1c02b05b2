"""Write-Ahead Log implementation.

Provides a durable, crash-safe log of committed transaction batches with
CRC32 checksums. A batch is only replayed if it was written completely.
"""

from __future__ import annotations

import logging
import os
import struct
import zlib
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.errors import WALCorruptionError
from ..core.types import FLAG_DELETE, Entry

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from ..core.types import Version

logger = logging.getLogger(__name__)

# Batch format:
# [magic (4B)] [version (8B)] [count (4B)] [entry]* [crc32 (4B)]
# Entry format:
# [flags (1B)] [user_meta (1B)] [expires_at (8B)] [key_len (4B)] [value_len (4B)] [key] [value]
MAGIC = 0x4C534D02
BATCH_HEADER = struct.Struct("<IQI")
ENTRY_HEADER = struct.Struct("<BBQII")
CRC = struct.Struct("<I")


class _PartialBatch(Exception):
    """Internal marker for a batch truncated at EOF."""


class SimpleWAL:
    """Append-only log of committed batches.

    Args:
        path: Path to WAL file
        flush_every_write: Whether to fsync after each batch

    Invariants:
        - Each batch is written with a single write call and a trailing checksum
        - Partial batches at EOF are skipped during replay
        - Batches are returned in append order
    """

    def __init__(self, path: str | Path, flush_every_write: bool = True):
        self.path = Path(path)
        self.flush_every_write = flush_every_write
        self.sequence = 0
        self.valid_offset = 0
        self._fd = None
        self._open_for_write()

    def _open_for_write(self) -> None:
        """Open WAL file for appending."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fd = open(self.path, "ab")
        logger.debug(f"Opened WAL {self.path} at offset {self._fd.tell()}")

    def append_batch(self, version: Version, entries: Sequence[Entry]) -> int:
        """Append one committed batch.

        Args:
            version: Commit version shared by every entry in the batch
            entries: Entries to persist (values must be loaded)

        Returns:
            WAL sequence number
        """
        if self._fd is None:
            raise RuntimeError("WAL is closed")

        parts = [BATCH_HEADER.pack(MAGIC, version, len(entries))]
        for entry in entries:
            value = entry.value or b""
            parts.append(
                ENTRY_HEADER.pack(
                    entry.flags, entry.user_meta, entry.expires_at, len(entry.key), len(value)
                )
            )
            parts.append(entry.key)
            parts.append(value)
        payload = b"".join(parts)
        record = payload + CRC.pack(zlib.crc32(payload))

        self._fd.write(record)
        if self.flush_every_write:
            self.sync()

        self.sequence += 1
        logger.debug(f"Appended batch seq={self.sequence}, version={version}, entries={len(entries)}")
        return self.sequence

    def sync(self) -> None:
        """Force data to disk (fsync)."""
        if self._fd:
            self._fd.flush()
            os.fsync(self._fd.fileno())

    def truncate(self, offset: int = 0) -> None:
        """Discard everything after offset (0 = all batches, after a flush)."""
        if self._fd is None:
            raise RuntimeError("WAL is closed")
        self._fd.flush()
        self._fd.truncate(offset)
        self._fd.seek(offset)
        self.sync()
        self.valid_offset = offset
        logger.debug(f"Truncated WAL {self.path} at offset {offset}")

    def discard_tail(self) -> bool:
        """Drop a partial batch left at EOF by a crash. Call after replay."""
        size = self.path.stat().st_size
        if size <= self.valid_offset:
            return False
        logger.warning(f"Discarding {size - self.valid_offset} trailing bytes from {self.path}")
        self.truncate(self.valid_offset)
        return True

    def close(self) -> None:
        """Close writer and release resources."""
        if self._fd:
            self.sync()
            self._fd.close()
            self._fd = None
            logger.debug(f"Closed WAL {self.path}")

    def __iter__(self) -> Iterator[tuple[Version, list[Entry]]]:
        """Iterate (version, entries) batches in append order.

        Skips a partial batch at EOF.
        """
        if self._fd is not None:
            self._fd.flush()
        self.valid_offset = 0
        with open(self.path, "rb") as f:
            while True:
                offset = f.tell()
                try:
                    batch = self._read_batch(f, offset)
                except _PartialBatch:
                    logger.warning(f"Partial batch at offset {offset} in {self.path}, skipping")
                    break
                if batch is None:
                    break
                self.valid_offset = f.tell()
                yield batch

    @staticmethod
    def _read_exact(f, n: int) -> bytes:
        data = f.read(n)
        if len(data) < n:
            raise _PartialBatch()
        return data

    def _read_batch(self, f, offset: int) -> tuple[Version, list[Entry]] | None:
        header = f.read(BATCH_HEADER.size)
        if not header:
            return None  # EOF
        if len(header) < BATCH_HEADER.size:
            raise _PartialBatch()

        magic, version, count = BATCH_HEADER.unpack(header)
        if magic != MAGIC:
            raise WALCorruptionError(f"Invalid magic at offset {offset}: {magic:x}")

        parts = [header]
        entries = []
        for _ in range(count):
            raw = self._read_exact(f, ENTRY_HEADER.size)
            flags, user_meta, expires_at, key_len, value_len = ENTRY_HEADER.unpack(raw)
            key = self._read_exact(f, key_len)
            value = self._read_exact(f, value_len)
            parts.extend((raw, key, value))
            entries.append(
                Entry(
                    key,
                    version,
                    value,
                    value_len,
                    user_meta,
                    expires_at,
                    bool(flags & FLAG_DELETE),
                )
            )

        stored_crc = CRC.unpack(self._read_exact(f, CRC.size))[0]
        computed_crc = zlib.crc32(b"".join(parts))
        if stored_crc != computed_crc:
            raise WALCorruptionError(
                f"CRC mismatch at offset {offset}: expected {computed_crc:x}, got {stored_crc:x}"
            )
        return version, entries

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
