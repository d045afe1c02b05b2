"""Transactional engine base.

Owns the commit version counter, snapshot bookkeeping and the commit
protocol shared by the on-disk and in-memory engines.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

from .errors import EngineError, TxnConflictError
from .txn import Txn

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from .config import EngineConfig
    from .types import Entry, Key, Version

logger = logging.getLogger(__name__)

MAX_VERSION = (1 << 64) - 1


class BaseEngine:
    """Common MVCC machinery for storage engines.

    Subclasses provide storage through these hooks:
        - _lookup(key, max_version): newest entry <= max_version, value loaded
        - _sources(start, max_version, with_values): sorted entry iterators
        - _write_batch(version, entries): persist and apply one commit
        - _after_commit(): optional housekeeping after a commit
        - _close(): release storage resources

    Invariants:
        - Versions are assigned under the engine lock and strictly increase
        - A transaction only sees versions <= its read version
        - A commit is applied entirely or not at all
    """

    def __init__(self, config: EngineConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self._clock = clock
        self._lock = threading.RLock()
        self._version: Version = 0
        self._snapshots: Counter[Version] = Counter()
        self._closed = False

    # Transactions

    def new_transaction(self, update: bool = False) -> Txn:
        """Start a transaction reading at the latest committed version."""
        return Txn(self, update)

    @contextmanager
    def view(self) -> Iterator[Txn]:
        """Run a read-only transaction; always discarded on exit."""
        txn = self.new_transaction(update=False)
        try:
            yield txn
        finally:
            txn.discard()

    @contextmanager
    def update(self) -> Iterator[Txn]:
        """Run a read-write transaction; committed on normal exit, discarded on error."""
        txn = self.new_transaction(update=True)
        try:
            yield txn
            txn.commit()
        finally:
            txn.discard()

    def now(self) -> float:
        return self._clock()

    @property
    def version(self) -> Version:
        """Latest committed version."""
        return self._version

    # Snapshot bookkeeping

    def _acquire_snapshot(self) -> Version:
        with self._lock:
            self._check_open()
            self._snapshots[self._version] += 1
            return self._version

    def _release_snapshot(self, version: Version) -> None:
        with self._lock:
            self._snapshots[version] -= 1
            if self._snapshots[version] <= 0:
                del self._snapshots[version]

    def _oldest_snapshot(self) -> Version:
        """Oldest version any open transaction may still read."""
        with self._lock:
            return min(self._snapshots, default=self._version)

    # Commit protocol

    def _commit(self, pending: Mapping[Key, Entry], reads: set[Key], read_version: Version) -> Version:
        with self._lock:
            self._check_open()
            for key in sorted(reads):
                latest = self._lookup(key, MAX_VERSION)
                if latest is not None and latest.version > read_version:
                    raise TxnConflictError(
                        f"key {key!r} changed at version {latest.version} after read at {read_version}"
                    )

            version = self._version + 1
            entries = [pending[key].with_version(version) for key in sorted(pending)]
            self._write_batch(version, entries)
            self._version = version
            logger.debug(f"Committed version {version} with {len(entries)} entries")
            self._after_commit()
            return version

    def _read_value(self, key: Key, version: Version) -> bytes:
        """Load the value of exactly (key, version), used by lazily fetched items."""
        entry = self._lookup(key, version)
        if entry is None or entry.version != version:
            raise EngineError(f"version {version} of key {key!r} is no longer available")
        return entry.value or b""

    # Lifecycle

    def _check_open(self) -> None:
        if self._closed:
            raise EngineError("engine is closed")

    def close(self) -> None:
        """Close the engine. Open transactions become unusable."""
        with self._lock:
            if self._closed:
                return
            self._close()
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # Storage hooks

    def _lookup(self, key: Key, max_version: Version) -> Entry | None:
        raise NotImplementedError

    def _sources(self, start: Key, max_version: Version, with_values: bool) -> list[Iterator[Entry]]:
        raise NotImplementedError

    def _write_batch(self, version: Version, entries: list[Entry]) -> None:
        raise NotImplementedError

    def _after_commit(self) -> None:
        """Housekeeping once a commit is visible (e.g. flushing)."""

    def _close(self) -> None:
        raise NotImplementedError
