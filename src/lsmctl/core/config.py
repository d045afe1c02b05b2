"""Configuration for the lsmctl storage engine.

Defines all tunable parameters and loads overrides from a YAML file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration parameters for the LSM storage engine.

    Attributes:
        data_dir: Root directory for all persistent data
        memtable_max_bytes: Maximum size of memtable before flush
        wal_flush_every_write: Whether to fsync after each committed batch
        bloom_false_positive_rate: Target FP rate for bloom filters
        sstable_max_bytes: Maximum size of a single SSTable
        max_levels: Maximum number of LSM tree levels
        level0_compaction_trigger: Table count that triggers L0 compaction
        index_interval: Sample every N records for the sparse index
        max_key_bytes: Largest accepted key
        value_max_bytes: Largest accepted value
        max_batch_count: Largest number of writes in one transaction
    """

    data_dir: str
    memtable_max_bytes: int = 64 * 1024 * 1024  # 64 MB
    wal_flush_every_write: bool = True
    bloom_false_positive_rate: float = 0.01
    sstable_max_bytes: int = 64 * 1024 * 1024  # 64 MB
    max_levels: int = 6
    level0_compaction_trigger: int = 4
    index_interval: int = 100
    max_key_bytes: int = 65000
    value_max_bytes: int = 1 << 30  # 1 GB
    max_batch_count: int = 100_000

    def compaction_trigger(self, level: int) -> int:
        """Number of tables at which a level is compacted into the next."""
        return self.level0_compaction_trigger + 2 * level


def load_config(path: str | Path | None, data_dir: str) -> EngineConfig:
    """Build an EngineConfig for data_dir, overlaying values from a YAML file."""
    base = EngineConfig(data_dir=data_dir)
    if path is None:
        return base

    try:
        with open(path) as f:
            user = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read config {path}: {e}") from e

    if not isinstance(user, dict):
        raise ConfigError(f"config {path} must be a mapping, got {type(user).__name__}")

    known = {f.name for f in fields(EngineConfig)} - {"data_dir"}
    unknown = sorted(set(user) - known)
    if unknown:
        raise ConfigError(f"unknown config keys in {path}: {', '.join(unknown)}")

    logger.debug(f"Loaded config overrides from {path}: {sorted(user)}")
    return replace(base, **user)
