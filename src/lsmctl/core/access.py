"""Key-value access layer.

KVStore turns get, list, set and delete requests into transactions against
an engine and maps engine failures onto the KVError hierarchy.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from .codec import ValueFormat, decode
from .config import EngineConfig
from .errors import EngineError, KeyNotFoundError, NotFoundError, StorageError
from .iterator import DEFAULT_PREFETCH_SIZE
from .store import LSMEngine
from .types import IteratorOptions

if TYPE_CHECKING:
    from ..interfaces.engine import Engine

logger = logging.getLogger(__name__)

_PRINTABLE = frozenset(string.printable.encode()) - frozenset(b"\t\n\r\x0b\x0c")


@dataclass(frozen=True)
class EntryOptions:
    """Per-write options. A ttl that is None or not positive means no expiry."""

    ttl: timedelta | None = None


@dataclass(frozen=True)
class ListResult:
    """Metadata of one listed key; listing never reads value bytes."""

    key: str
    size: int
    version: int
    meta: int

    def meta_str(self) -> str:
        if self.meta in _PRINTABLE:
            return chr(self.meta)
        return f"0x{self.meta:02x}"

    def __str__(self) -> str:
        return f"{self.key:<30} {self.size:>10} {self.version:>10} {self.meta_str():>5}"


def _encode_key(key: str) -> bytes:
    return key.encode("utf-8")


class KVStore:
    """Access layer over a transactional engine.

    Args:
        engine: Any engine satisfying the Engine protocol

    Invariants:
        - Every operation runs in exactly one transaction, closed before returning
        - A failed write leaves the store unchanged
        - Listing totals count every prefix match in the snapshot
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self, key: str, fmt: ValueFormat | str = ValueFormat.STRING) -> str:
        """Return the value of key rendered in fmt."""
        try:
            with self.engine.view() as txn:
                raw = txn.get(_encode_key(key)).value_copy()
        except KeyNotFoundError as e:
            raise NotFoundError(f"key {key} not found") from e
        except (EngineError, OSError) as e:
            raise StorageError(f"get {key!r}: {e}") from e

        return decode(raw, fmt)

    def list_keys(
        self, prefix: str = "", limit: int = 0, offset: int = 0
    ) -> tuple[list[ListResult], int]:
        """List keys under prefix, paginated by limit and offset.

        Returns:
            The page of results in ascending key order and the total number
            of keys matching prefix
        """
        opts = IteratorOptions(
            prefix=_encode_key(prefix),
            prefetch_values=False,
            prefetch_size=limit if limit > 0 else DEFAULT_PREFETCH_SIZE,
        )
        results: list[ListResult] = []
        total = 0
        try:
            with self.engine.view() as txn, txn.iterate(opts) as it:
                for index, item in enumerate(it):
                    total += 1
                    if index < offset or len(results) >= limit:
                        continue
                    results.append(
                        ListResult(
                            key=item.key.decode("utf-8", errors="backslashreplace"),
                            size=item.estimated_size(),
                            version=item.version,
                            meta=item.user_meta,
                        )
                    )
        except (EngineError, OSError) as e:
            raise StorageError(f"list prefix {prefix!r}: {e}") from e

        logger.debug(f"Listed {len(results)} of {total} keys under prefix {prefix!r}")
        return results, total

    def set(self, key: str, value: str, opts: EntryOptions | None = None) -> None:
        """Write key, with an expiry when opts carries a positive ttl."""
        ttl = opts.ttl if opts is not None else None
        if ttl is not None and ttl <= timedelta(0):
            ttl = None
        try:
            with self.engine.update() as txn:
                txn.set(_encode_key(key), value.encode("utf-8"), ttl=ttl)
        except (EngineError, OSError) as e:
            raise StorageError(f"set {key!r}: {e}") from e

    def delete(self, *keys: str) -> None:
        """Delete keys in one transaction; all are removed or none are."""
        try:
            with self.engine.update() as txn:
                for key in keys:
                    try:
                        txn.delete(_encode_key(key))
                    except EngineError as e:
                        raise StorageError(f"delete {key!r}: {e}") from e
        except (EngineError, OSError) as e:
            # Raised by the commit, which covers every key
            raise StorageError(f"delete {list(keys)!r}: {e}") from e

    def close(self) -> None:
        self.engine.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def open_store(directory: str | Path, config: EngineConfig | None = None) -> KVStore:
    """Open the on-disk store in directory."""
    if config is None:
        config = EngineConfig(data_dir=str(directory))
    try:
        engine = LSMEngine(config)
    except (EngineError, OSError) as e:
        raise StorageError(f"open store {directory}: {e}") from e
    return KVStore(engine)
