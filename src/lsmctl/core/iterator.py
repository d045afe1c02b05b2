"""Merging iterator over a transaction's snapshot.

Combines the engine's sorted sources (memtable and SSTables) and the
transaction's own pending writes into one ascending stream of visible keys.
"""

from __future__ import annotations

import heapq
import logging
from itertools import islice
from typing import TYPE_CHECKING

from .item import Item

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .txn import Txn
    from .types import Entry, IteratorOptions, Key

logger = logging.getLogger(__name__)

DEFAULT_PREFETCH_SIZE = 100


def _prefetch(source: Iterator[Entry], size: int) -> Iterator[Entry]:
    """Pull entries from source in batches of size."""
    while True:
        batch = list(islice(source, size))
        if not batch:
            return
        yield from batch


def _ranked(rank: int, source: Iterable[Entry]) -> Iterator[tuple[tuple[Key, int, int], Entry]]:
    for entry in source:
        yield (entry.key, -entry.version, rank), entry


class TxnIterator:
    """Forward iterator yielding the newest visible version of each key.

    Args:
        txn: Transaction providing the snapshot
        opts: Prefix, value prefetch and batch size options

    Invariants:
        - Keys are yielded in ascending byte order, each at most once
        - Only keys starting with opts.prefix are yielded
        - Tombstones and expired entries are skipped
        - Pending writes of the transaction shadow committed versions
    """

    def __init__(self, txn: Txn, opts: IteratorOptions):
        self._txn = txn
        self._opts = opts
        self._it: Iterator[Item] | None = None
        self._closed = False
        self.seek(opts.prefix)

    def seek(self, key: Key) -> None:
        """Reposition at the first visible key >= key (and >= prefix)."""
        self._txn._check_usable()
        if self._it is not None:
            self._it.close()
        self._it = self._merge(max(key, self._opts.prefix))

    def _merge(self, start: Key) -> Iterator[Item]:
        txn = self._txn
        size = self._opts.prefetch_size if self._opts.prefetch_size > 0 else DEFAULT_PREFETCH_SIZE
        sources = txn._engine._sources(start, txn.read_version, self._opts.prefetch_values)

        # Rank 0 wins ties, so pending writes shadow the commit at read_version
        ranked = [_ranked(0, txn.pending_entries(start))]
        ranked.extend(
            _ranked(rank, _prefetch(source, size)) for rank, source in enumerate(sources, start=1)
        )

        prefix = self._opts.prefix
        now = txn.now()
        last_key = None
        for _, entry in heapq.merge(*ranked):
            if not entry.key.startswith(prefix):
                break
            if entry.key == last_key:
                continue
            last_key = entry.key
            if entry.deleted or entry.is_expired(now):
                continue
            yield Item(entry, txn)

    def __iter__(self) -> TxnIterator:
        return self

    def __next__(self) -> Item:
        if self._closed:
            raise StopIteration
        self._txn._check_usable()
        return next(self._it)

    def close(self) -> None:
        """Stop iteration and release source file handles."""
        if not self._closed:
            self._closed = True
            self._it.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
