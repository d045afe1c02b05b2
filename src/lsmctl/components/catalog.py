"""Table manifest.

Records which tables make up each level, persisted as one JSON document.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Sequence
from pathlib import Path

from ..core.errors import RecoveryError
from ..core.types import SSTableMeta, Version

logger = logging.getLogger(__name__)


class SimpleSSTableCatalog:
    """Per-level list of live tables, oldest first.

    Args:
        catalog_path: Manifest file, usually meta/catalog.json
        max_levels: Number of levels the manifest may reference

    Besides the levels, the manifest records the next table file id and the
    highest version already flushed to tables (WAL batches at or below it
    are not replayed).

    Invariants:
        - Every change rewrites the whole manifest and renames it into place
        - A missing manifest is an empty store
        - Methods may be called from several threads
    """

    def __init__(self, catalog_path: str | Path, max_levels: int = 6):
        self.catalog_path = Path(catalog_path)
        self.max_levels = max_levels
        self._lock = threading.Lock()

        self._levels: dict[int, list[SSTableMeta]] = {i: [] for i in range(max_levels)}
        self.next_file_id = 1
        self.flushed_version: Version = 0

        self._load()

    def _load(self) -> None:
        """Read the manifest, if one exists."""
        if not self.catalog_path.exists():
            logger.info(f"Creating new catalog at {self.catalog_path}")
            return

        try:
            with open(self.catalog_path) as f:
                data = json.load(f)
            self.next_file_id = int(data["next_file_id"])
            self.flushed_version = int(data["flushed_version"])
            for level_str, metas in data["levels"].items():
                level = int(level_str)
                if not 0 <= level < self.max_levels:
                    raise RecoveryError(
                        f"Catalog references level {level} but max_levels is {self.max_levels}"
                    )
                self._levels[level] = metas
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise RecoveryError(f"Failed to load catalog {self.catalog_path}: {e}") from e
        logger.info(f"Loaded catalog {self.catalog_path} (flushed version {self.flushed_version})")

    def _save(self) -> None:
        """Write the manifest to a temp file, fsync, then replace."""
        data = {
            "next_file_id": self.next_file_id,
            "flushed_version": self.flushed_version,
            "levels": self._levels,
        }
        temp_path = self.catalog_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, self.catalog_path)
        logger.debug(f"Wrote catalog {self.catalog_path}")

    def allocate_file_id(self) -> int:
        """Reserve a table file id. Persisted with the next catalog update."""
        with self._lock:
            file_id = self.next_file_id
            self.next_file_id += 1
            return file_id

    def list_level(self, level: int) -> Sequence[SSTableMeta]:
        """Return list of SSTables at the given level, oldest first."""
        with self._lock:
            if 0 <= level < self.max_levels:
                return list(self._levels[level])
            return []

    def add_sstable(self, level: int, meta: SSTableMeta, flushed_version: Version | None = None) -> None:
        """Register a flushed table; flushed_version advances the WAL replay point."""
        with self._lock:
            if not 0 <= level < self.max_levels:
                raise ValueError(f"level {level} outside 0..{self.max_levels - 1}")

            self._levels[level].append(meta)
            if flushed_version is not None:
                self.flushed_version = max(self.flushed_version, flushed_version)
            self._save()
            logger.debug(f"Added SSTable to level {level}: {meta['data_file']}")

    def replace_sstables(
        self, removed: Sequence[SSTableMeta], level: int, added: Sequence[SSTableMeta]
    ) -> None:
        """Atomically swap compaction inputs for compaction outputs."""
        with self._lock:
            files_to_remove = {meta["data_file"] for meta in removed}
            for lvl in range(self.max_levels):
                self._levels[lvl] = [
                    m for m in self._levels[lvl] if m["data_file"] not in files_to_remove
                ]
            self._levels[level].extend(added)
            self._save()
            logger.info(
                f"Replaced {len(removed)} SSTables with {len(added)} at level {level}"
            )

    def get_all_sstables(self) -> list[tuple[int, SSTableMeta]]:
        """(level, meta) pairs for every live table, shallow levels first."""
        with self._lock:
            return [
                (level, meta)
                for level in range(self.max_levels)
                for meta in self._levels[level]
            ]

    def max_version(self) -> Version:
        """Highest version stored in any registered table."""
        with self._lock:
            versions = [
                meta["max_version"] or 0
                for metas in self._levels.values()
                for meta in metas
            ]
        return max(versions, default=0)
