"""Compaction implementation.

Merges SSTables into the next level, dropping shadowed versions and, on the
bottom-most populated level, tombstones and expired entries.
"""

from __future__ import annotations

import heapq
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.errors import CompactionError, SSTableError
from .sstable import SimpleSSTableReader, SimpleSSTableWriter

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from ..core.config import EngineConfig
    from ..core.types import Entry, SSTableMeta, Version
    from .catalog import SimpleSSTableCatalog

logger = logging.getLogger(__name__)

MAX_VERSION = (1 << 64) - 1


class SimpleCompactor:
    """Leveled compaction strategy.

    Args:
        config: Engine configuration
        data_dir: Directory for output SSTables
        catalog: Catalog used to allocate output file ids
    """

    def __init__(self, config: EngineConfig, data_dir: str | Path, catalog: SimpleSSTableCatalog):
        self.config = config
        self.data_dir = Path(data_dir)
        self.catalog = catalog

    def compact(
        self,
        input_tables: Sequence[SSTableMeta],
        target_level: int,
        discard_version: Version,
        drop_deleted: bool,
        now: float,
    ) -> list[SSTableMeta]:
        """Merge input tables and write output SSTables for target_level.

        Args:
            input_tables: SSTables to compact
            target_level: Level the outputs are registered at
            discard_version: Oldest snapshot still readable; older shadowed
                versions can be removed
            drop_deleted: Whether tombstones and expired entries may be removed
            now: Current unix time for expiry checks

        Returns:
            List of produced SSTable metadata
        """
        if not input_tables:
            return []

        logger.info(f"Compacting {len(input_tables)} SSTables to level {target_level}")

        readers = []
        try:
            for meta in input_tables:
                readers.append(
                    SimpleSSTableReader(self.data_dir / meta["data_file"], self.data_dir / meta["meta_file"])
                )
            merged = self._merge(readers, discard_version, drop_deleted, now)
            output_metas = self._write_output(merged, target_level)
        except SSTableError as e:
            raise CompactionError(f"Compaction to level {target_level} failed: {e}") from e
        finally:
            for reader in readers:
                reader.close()

        logger.info(f"Compaction produced {len(output_metas)} SSTables")
        return output_metas

    def _merge(
        self,
        readers: Sequence[SimpleSSTableReader],
        discard_version: Version,
        drop_deleted: bool,
        now: float,
    ) -> Iterator[Entry]:
        """Merge sorted tables, keeping what any live or future snapshot can see."""
        merged = heapq.merge(
            *(reader.scan(b"", MAX_VERSION) for reader in readers),
            key=lambda e: e.sort_key(),
        )

        last_key = None
        last_version = None
        kept_at_or_below = False
        for entry in merged:
            if entry.key != last_key:
                last_key = entry.key
                last_version = None
                kept_at_or_below = False
            if entry.version == last_version:
                continue  # same commit present in two inputs
            last_version = entry.version

            if entry.version > discard_version:
                yield entry
                continue

            # Only the newest version at or below the discard point is visible
            if kept_at_or_below:
                continue
            kept_at_or_below = True
            if drop_deleted and (entry.deleted or entry.is_expired(now)):
                continue
            yield entry

    def _write_output(self, records: Iterator[Entry], level: int) -> list[SSTableMeta]:
        """Write merged records to output SSTables."""
        output_metas = []
        writer = None

        for entry in records:
            if writer is None or writer.size_bytes() >= self.config.sstable_max_bytes:
                if writer is not None:
                    output_metas.append(writer.finalize())
                file_id = self.catalog.allocate_file_id()
                writer = SimpleSSTableWriter(
                    self.data_dir / f"sst-{level}-{file_id:06d}.data",
                    self.data_dir / f"sst-{level}-{file_id:06d}.meta",
                    self.config.bloom_false_positive_rate,
                    self.config.index_interval,
                )
            writer.add(entry)

        if writer is not None:
            output_metas.append(writer.finalize())

        return output_metas
