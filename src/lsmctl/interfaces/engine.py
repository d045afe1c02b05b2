"""Protocol definitions for the storage engine capability.

The access layer depends only on these protocols; LSMEngine and
MemoryEngine both satisfy them.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager
from datetime import timedelta
from typing import Protocol, runtime_checkable

from ..core.types import Entry, IteratorOptions, Key, Value, Version


@runtime_checkable
class Item(Protocol):
    """A key and its metadata as seen by a transaction."""

    @property
    def key(self) -> Key: ...

    @property
    def version(self) -> Version: ...

    @property
    def user_meta(self) -> int: ...

    @property
    def expires_at(self) -> int: ...

    def estimated_size(self) -> int:
        """Encoded size of key plus value."""
        ...

    def value(self) -> memoryview:
        """Value bytes, valid only while the transaction is open."""
        ...

    def value_copy(self) -> bytes:
        """Value bytes that outlive the transaction."""
        ...


@runtime_checkable
class TxnIterator(Protocol):
    """Ordered iterator over a transaction's snapshot."""

    def __iter__(self) -> Iterator[Item]: ...

    def __next__(self) -> Item: ...

    def seek(self, key: Key) -> None:
        """Reposition at the first key >= key."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class Txn(Protocol):
    """Snapshot transaction."""

    read_version: Version

    def get(self, key: Key) -> Item:
        """Return item for key; raise KeyNotFoundError if absent."""
        ...

    def iterate(self, opts: IteratorOptions | None = None) -> TxnIterator:
        """Return an ascending iterator configured by opts."""
        ...

    def set(self, key: Key, value: Value, ttl: timedelta | None = None) -> None:
        """Buffer a write with optional TTL."""
        ...

    def set_entry(self, entry: Entry) -> None:
        """Buffer a fully specified entry."""
        ...

    def delete(self, key: Key) -> None:
        """Buffer a deletion."""
        ...

    def commit(self) -> Version | None:
        """Atomically apply buffered writes."""
        ...

    def discard(self) -> None:
        """End the transaction without applying writes."""
        ...


@runtime_checkable
class Engine(Protocol):
    """Embedded transactional key-value engine."""

    def view(self) -> AbstractContextManager[Txn]:
        """Read-only transaction scope."""
        ...

    def update(self) -> AbstractContextManager[Txn]:
        """Read-write transaction scope; commits on normal exit."""
        ...

    def new_transaction(self, update: bool = False) -> Txn: ...

    def close(self) -> None:
        """Release the engine handle."""
        ...
