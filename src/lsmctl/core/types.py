"""Common type definitions for lsmctl.

Defines the entry model shared by the engine components and the access layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypedDict

# Core primitive types
Key = bytes
Value = bytes
Version = int

# Entry flags (persisted in WAL and SSTable records)
FLAG_DELETE = 0x01


@dataclass(frozen=True)
class Entry:
    """A single versioned record as stored by the engine.

    Attributes:
        key: Raw key bytes
        version: Commit version assigned by the engine (0 while pending)
        value: Value bytes, or None when the value was not fetched
        value_size: Length of the value in bytes, known even when not fetched
        user_meta: One opaque byte stored alongside the entry
        expires_at: Unix seconds after which the entry is expired; 0 = never
        deleted: True for tombstones
    """

    key: Key
    version: Version = 0
    value: Value | None = b""
    value_size: int = field(default=-1)
    user_meta: int = 0
    expires_at: int = 0
    deleted: bool = False

    def __post_init__(self) -> None:
        if self.value_size < 0:
            object.__setattr__(self, "value_size", len(self.value or b""))
        if not 0 <= self.user_meta <= 0xFF:
            raise ValueError(f"user_meta must fit in one byte, got {self.user_meta}")

    @classmethod
    def put(
        cls,
        key: Key,
        value: Value,
        version: Version = 0,
        user_meta: int = 0,
        expires_at: int = 0,
    ) -> Entry:
        return cls(key, version, value, len(value), user_meta, expires_at)

    @classmethod
    def tombstone(cls, key: Key, version: Version = 0) -> Entry:
        return cls(key, version, b"", 0, deleted=True)

    def with_version(self, version: Version) -> Entry:
        return Entry(
            self.key,
            version,
            self.value,
            self.value_size,
            self.user_meta,
            self.expires_at,
            self.deleted,
        )

    def without_value(self) -> Entry:
        return Entry(
            self.key,
            self.version,
            None,
            self.value_size,
            self.user_meta,
            self.expires_at,
            self.deleted,
        )

    @property
    def flags(self) -> int:
        return FLAG_DELETE if self.deleted else 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at != 0 and self.expires_at <= now

    def estimated_size(self) -> int:
        """Encoded size as reported to callers (key plus value length)."""
        if self.deleted:
            return 0
        return len(self.key) + self.value_size

    def sort_key(self) -> tuple[Key, int]:
        """Order by key ascending, then newest version first."""
        return (self.key, -self.version)


@dataclass
class IteratorOptions:
    """Options for a transaction iterator.

    Attributes:
        prefix: Only yield keys starting with this prefix
        prefetch_values: Load value bytes while iterating
        prefetch_size: Number of entries pulled per batch from each source
    """

    prefix: Key = b""
    prefetch_values: bool = True
    prefetch_size: int = 100


class SSTableMeta(TypedDict):
    """Typed metadata describing an SSTable on disk."""
    data_file: str
    meta_file: str
    min_key: str | None
    max_key: str | None
    min_version: Version | None
    max_version: Version | None
    count: int
    data_size: int
    index: list[tuple[str, int]]
