"""Snapshot transactions.

A transaction reads a snapshot of the store at its read version and buffers
writes until commit.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import TYPE_CHECKING

from .errors import (
    InvalidKeyError,
    KeyNotFoundError,
    ReadOnlyTxnError,
    TxnClosedError,
    TxnTooBigError,
    ValueTooLargeError,
)
from .item import Item
from .iterator import TxnIterator
from .types import Entry, IteratorOptions

if TYPE_CHECKING:
    from .engine import BaseEngine
    from .types import Key, Value, Version


class Txn:
    """Snapshot transaction.

    Args:
        engine: Engine the transaction runs against
        update: Whether writes are allowed

    Invariants:
        - Reads see committed versions <= read_version plus this txn's own writes
        - Writes are buffered and validated; nothing reaches the engine before commit
        - commit() and discard() end the transaction; later use raises TxnClosedError
    """

    def __init__(self, engine: BaseEngine, update: bool = False):
        self._engine = engine
        self.update = update
        self.read_version = engine._acquire_snapshot()
        self._pending: dict[Key, Entry] = {}
        self._reads: set[Key] = set()
        self._done = False

    def now(self) -> float:
        return self._engine.now()

    def _check_usable(self) -> None:
        if self._done:
            raise TxnClosedError("transaction has already been committed or discarded")
        self._engine._check_open()

    def _check_writable(self) -> None:
        self._check_usable()
        if not self.update:
            raise ReadOnlyTxnError("cannot write in a read-only transaction")

    # Reads

    def get(self, key: Key) -> Item:
        """Return the item for key, raising KeyNotFoundError if absent or expired."""
        self._check_usable()
        if self.update:
            pending = self._pending.get(key)
            if pending is not None:
                if pending.deleted or pending.is_expired(self.now()):
                    raise KeyNotFoundError(key)
                return Item(pending.with_version(self.read_version), self)
            self._reads.add(key)

        entry = self._engine._lookup(key, self.read_version)
        if entry is None or entry.deleted or entry.is_expired(self.now()):
            raise KeyNotFoundError(key)
        return Item(entry, self)

    def iterate(self, opts: IteratorOptions | None = None) -> TxnIterator:
        """Return an iterator over visible keys in ascending order."""
        self._check_usable()
        return TxnIterator(self, opts or IteratorOptions())

    def pending_entries(self, start: Key) -> list[Entry]:
        """Buffered writes with key >= start, stamped with the read version."""
        return [
            self._pending[key].with_version(self.read_version)
            for key in sorted(self._pending)
            if key >= start
        ]

    # Writes

    def set(self, key: Key, value: Value, ttl: timedelta | None = None) -> None:
        """Buffer a write; a positive ttl makes the entry expire."""
        expires_at = 0
        if ttl is not None and ttl > timedelta(0):
            expires_at = math.ceil(self.now() + ttl.total_seconds())
        self.set_entry(Entry.put(key, value, expires_at=expires_at))

    def set_entry(self, entry: Entry) -> None:
        """Buffer a fully specified entry (user meta, expiry)."""
        self._check_writable()
        self._validate_key(entry.key)
        if entry.value_size > self._engine.config.value_max_bytes:
            raise ValueTooLargeError(
                f"value for {entry.key!r} is {entry.value_size} bytes, "
                f"limit is {self._engine.config.value_max_bytes}"
            )
        self._buffer(entry)

    def delete(self, key: Key) -> None:
        """Buffer a tombstone for key."""
        self._check_writable()
        self._validate_key(key)
        self._buffer(Entry.tombstone(key))

    def _validate_key(self, key: Key) -> None:
        if not key:
            raise InvalidKeyError("key cannot be empty")
        if len(key) > self._engine.config.max_key_bytes:
            raise InvalidKeyError(
                f"key is {len(key)} bytes, limit is {self._engine.config.max_key_bytes}"
            )

    def _buffer(self, entry: Entry) -> None:
        if entry.key not in self._pending and len(self._pending) >= self._engine.config.max_batch_count:
            raise TxnTooBigError(
                f"transaction exceeds {self._engine.config.max_batch_count} entries"
            )
        self._pending[entry.key] = entry

    # Completion

    def commit(self) -> Version | None:
        """Apply buffered writes atomically. Returns the commit version, if any."""
        self._check_usable()
        try:
            if not self._pending:
                return None
            return self._engine._commit(self._pending, self._reads, self.read_version)
        finally:
            self.discard()

    def discard(self) -> None:
        """End the transaction, dropping any buffered writes. Idempotent."""
        if self._done:
            return
        self._done = True
        self._pending.clear()
        self._engine._release_snapshot(self.read_version)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.discard()
        return False
