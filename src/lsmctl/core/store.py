"""LSM engine implementation - the on-disk store behind lsmctl.

Orchestrates the directory lock, WAL, memtable, SSTables and compaction.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from ..components.catalog import SimpleSSTableCatalog
from ..components.compaction import SimpleCompactor
from ..components.dirlock import DirectoryLock
from ..components.memtable import SimpleMemtable
from ..components.sstable import SimpleSSTableReader, SimpleSSTableWriter
from ..components.wal import SimpleWAL
from .engine import BaseEngine
from .errors import RecoveryError, WALCorruptionError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .config import EngineConfig
    from .types import Entry, Key, SSTableMeta, Version

logger = logging.getLogger(__name__)


class LSMEngine(BaseEngine):
    """LSM tree storage engine with durability and crash recovery.

    Args:
        config: Engine configuration
        clock: Source of unix time, used for TTL expiry

    Public API (besides transactions from BaseEngine):
        - flush_memtable(): Force flush to disk
        - compact_level(level): Manual compaction
        - close(): Release the directory and file handles

    Invariants:
        - Every commit is appended to the WAL before it is applied to the memtable
        - Memtable versions are newer than any version stored in SSTables
        - Only one process opens a data directory at a time
    """

    def __init__(self, config: EngineConfig, clock: Callable[[], float] = time.time):
        super().__init__(config, clock)
        self.data_dir = Path(config.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.wal_dir = self.data_dir / "wal"
        self.sst_dir = self.data_dir / "sst"
        self.meta_dir = self.data_dir / "meta"

        self._dir_lock = DirectoryLock(self.data_dir / "LOCK")
        self._dir_lock.acquire()
        try:
            for d in [self.wal_dir, self.sst_dir, self.meta_dir]:
                d.mkdir(parents=True, exist_ok=True)

            self._memtable = SimpleMemtable()
            self._catalog = SimpleSSTableCatalog(
                self.meta_dir / "catalog.json", max_levels=config.max_levels
            )
            self._compactor = SimpleCompactor(config, self.sst_dir, self._catalog)
            self._readers: dict[str, SimpleSSTableReader] = {}
            self._wal = SimpleWAL(
                self.wal_dir / "wal-current.wal",
                flush_every_write=config.wal_flush_every_write,
            )
            self._remove_orphans()
            self._recover()
        except BaseException:
            self._dir_lock.release()
            raise

        logger.info(f"Opened LSM engine at {self.data_dir} (version {self._version})")

    def _recover(self) -> None:
        """Rebuild the memtable from WAL batches not yet flushed."""
        flushed = self._catalog.flushed_version
        logger.info(f"Starting recovery from WAL (flushed version {flushed})...")

        try:
            count = 0
            for version, entries in self._wal:
                self._version = max(self._version, version)
                if version <= flushed:
                    continue
                for entry in entries:
                    self._memtable.put(entry)
                count += len(entries)
            self._wal.discard_tail()
        except (WALCorruptionError, OSError) as e:
            raise RecoveryError(f"Failed to recover from WAL: {e}") from e

        self._version = max(self._version, flushed, self._catalog.max_version())
        logger.info(f"Recovered {count} records from WAL")

    def _remove_orphans(self) -> None:
        """Delete table files left by a flush or compaction that never reached the catalog."""
        known = set()
        for _, meta in self._catalog.get_all_sstables():
            known.add(meta["data_file"])
            known.add(meta["meta_file"])
        for path in self.sst_dir.iterdir():
            if path.name not in known:
                logger.warning(f"Removing orphaned table file {path}")
                path.unlink()

    # Storage hooks

    def _reader(self, meta: SSTableMeta) -> SimpleSSTableReader:
        reader = self._readers.get(meta["data_file"])
        if reader is None:
            reader = SimpleSSTableReader(
                self.sst_dir / meta["data_file"], self.sst_dir / meta["meta_file"]
            )
            self._readers[meta["data_file"]] = reader
        return reader

    def _lookup(self, key: Key, max_version: Version) -> Entry | None:
        with self._lock:
            self._check_open()
            entry = self._memtable.get(key, max_version)
            if entry is not None:
                return entry

            newest = None
            for _, meta in self._catalog.get_all_sstables():
                if meta["min_version"] is not None and meta["min_version"] > max_version:
                    continue
                found = self._reader(meta).get(key, max_version)
                if found is not None and (newest is None or found.version > newest.version):
                    newest = found
            return newest

    def _sources(self, start: Key, max_version: Version, with_values: bool) -> list[Iterator[Entry]]:
        with self._lock:
            self._check_open()
            sources = [self._memtable.scan(start, max_version)]
            for _, meta in self._catalog.get_all_sstables():
                if meta["min_version"] is not None and meta["min_version"] > max_version:
                    continue
                sources.append(self._reader(meta).scan(start, max_version, with_values))
            return sources

    def _write_batch(self, version: Version, entries: list[Entry]) -> None:
        self._wal.append_batch(version, entries)
        for entry in entries:
            self._memtable.put(entry)

    def _after_commit(self) -> None:
        if self._memtable.size_bytes() > self.config.memtable_max_bytes:
            self._flush_memtable_locked()

    # Administration

    def flush_memtable(self) -> None:
        """Force flush of memtable to SSTable."""
        with self._lock:
            self._check_open()
            self._flush_memtable_locked()

    def _flush_memtable_locked(self) -> None:
        """Internal flush (must hold lock)."""
        if len(self._memtable) == 0:
            return

        logger.info(f"Flushing memtable ({self._memtable.size_bytes()} bytes, {len(self._memtable)} entries)")

        file_id = self._catalog.allocate_file_id()
        data_path = self.sst_dir / f"sst-0-{file_id:06d}.data"
        meta_path = self.sst_dir / f"sst-0-{file_id:06d}.meta"

        writer = SimpleSSTableWriter(
            data_path, meta_path, self.config.bloom_false_positive_rate, self.config.index_interval
        )
        for entry in self._memtable.items():
            writer.add(entry)
        meta = writer.finalize()

        # Catalog first: once it is durable the WAL contents are redundant
        self._catalog.add_sstable(0, meta, flushed_version=self._memtable.max_version())
        self._memtable.clear()
        self._wal.truncate()

        logger.info(f"Flushed memtable to {data_path}")
        self._maybe_compact()

    def _maybe_compact(self) -> None:
        for level in range(self.config.max_levels - 1):
            if len(self._catalog.list_level(level)) >= self.config.compaction_trigger(level):
                self._compact_locked(level)

    def compact_level(self, level: int) -> None:
        """Trigger synchronous compaction of level into level + 1."""
        with self._lock:
            self._check_open()
            self._compact_locked(level)

    def _compact_locked(self, level: int) -> None:
        if level >= self.config.max_levels - 1:
            logger.warning(f"Cannot compact level {level}, at max level")
            return

        upper = list(self._catalog.list_level(level))
        if not upper:
            logger.info(f"No SSTables at level {level}, skipping compaction")
            return

        inputs = upper + list(self._catalog.list_level(level + 1))
        deeper = any(
            self._catalog.list_level(lvl) for lvl in range(level + 2, self.config.max_levels)
        )
        logger.info(f"Compacting level {level} -> {level + 1}")

        outputs = self._compactor.compact(
            inputs,
            level + 1,
            discard_version=self._oldest_snapshot(),
            drop_deleted=not deeper,
            now=self.now(),
        )
        self._catalog.replace_sstables(inputs, level + 1, outputs)

        for meta in inputs:
            reader = self._readers.pop(meta["data_file"], None)
            if reader is not None:
                reader.close()
            for path in (self.sst_dir / meta["data_file"], self.sst_dir / meta["meta_file"]):
                try:
                    os.unlink(path)
                except OSError as e:
                    logger.warning(f"Failed to delete old SSTable file {path}: {e}")

    def level_counts(self) -> list[int]:
        """Number of SSTables per level."""
        return [len(self._catalog.list_level(lvl)) for lvl in range(self.config.max_levels)]

    def _close(self) -> None:
        logger.info(f"Closing LSM engine at {self.data_dir}")
        try:
            self._wal.close()
            for reader in self._readers.values():
                reader.close()
            self._readers.clear()
        finally:
            self._dir_lock.release()
