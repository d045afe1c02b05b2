"""Items yielded by transaction reads."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import Entry

if TYPE_CHECKING:
    from .txn import Txn
    from .types import Key, Version


class Item:
    """A key and its metadata as seen by a transaction.

    The value may not have been fetched yet (iterators created with
    prefetch_values=False); it is loaded on first access.
    """

    def __init__(self, entry: Entry, txn: Txn):
        self._entry = entry
        self._txn = txn

    @property
    def key(self) -> Key:
        return self._entry.key

    @property
    def version(self) -> Version:
        return self._entry.version

    @property
    def user_meta(self) -> int:
        return self._entry.user_meta

    @property
    def expires_at(self) -> int:
        return self._entry.expires_at

    def estimated_size(self) -> int:
        return self._entry.estimated_size()

    def is_deleted(self) -> bool:
        return self._entry.deleted

    def is_expired(self) -> bool:
        return self._entry.is_expired(self._txn.now())

    def value(self) -> memoryview:
        """Value bytes, only valid while the transaction is open."""
        self._txn._check_usable()
        if self._entry.value is None:
            loaded = self._txn._engine._read_value(self._entry.key, self._entry.version)
            self._entry = Entry(
                self._entry.key,
                self._entry.version,
                loaded,
                len(loaded),
                self._entry.user_meta,
                self._entry.expires_at,
                self._entry.deleted,
            )
        return memoryview(self._entry.value)

    def value_copy(self) -> bytes:
        """Copy of the value bytes that remains valid after the transaction ends."""
        return self.value().tobytes()

    def __repr__(self) -> str:
        return f"Item(key={self.key!r}, version={self.version}, meta={self.user_meta})"
