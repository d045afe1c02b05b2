"""In-memory engine with the same transactional semantics as LSMEngine."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

from ..components.memtable import SimpleMemtable
from .config import EngineConfig
from .engine import BaseEngine

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .types import Entry, Key, Version


class MemoryEngine(BaseEngine):
    """Engine holding every version in a single memtable; nothing touches disk."""

    def __init__(self, config: EngineConfig | None = None, clock: Callable[[], float] = time.time):
        super().__init__(config or EngineConfig(data_dir=":memory:"), clock)
        self._memtable = SimpleMemtable()

    def _lookup(self, key: Key, max_version: Version) -> Entry | None:
        with self._lock:
            self._check_open()
            return self._memtable.get(key, max_version)

    def _sources(self, start: Key, max_version: Version, with_values: bool) -> list[Iterator[Entry]]:
        with self._lock:
            self._check_open()
            return [self._memtable.scan(start, max_version)]

    def _write_batch(self, version: Version, entries: list[Entry]) -> None:
        for entry in entries:
            self._memtable.put(entry)

    def _close(self) -> None:
        self._memtable.clear()
