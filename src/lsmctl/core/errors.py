"""Exception hierarchy for lsmctl.

Engine errors derive from EngineError; access layer errors derive from
KVError and wrap the engine error that caused them.
"""

from __future__ import annotations


class KVError(Exception):
    """Base exception for access layer errors."""
    pass


class NotFoundError(KVError):
    """Raised when the requested key is absent."""
    pass


class DecodeError(KVError):
    """Raised when raw bytes cannot be rendered in the requested format."""
    pass


class UnsupportedFormatError(DecodeError):
    """Raised when the requested display format is unknown."""

    def __init__(self, fmt: str):
        self.fmt = fmt
        super().__init__(f"unsupported format {fmt!r}")


class StorageError(KVError):
    """Raised when the underlying engine fails."""
    pass


class ConfigError(Exception):
    """Raised when engine configuration cannot be loaded."""
    pass


class EngineError(Exception):
    """Base exception for all storage engine errors."""
    pass


class KeyNotFoundError(EngineError):
    """Raised by Txn.get when no visible version of the key exists."""

    def __init__(self, key: bytes):
        self.key = key
        super().__init__(f"key not found: {key!r}")


class InvalidKeyError(EngineError):
    """Raised for empty or oversized keys."""
    pass


class ValueTooLargeError(EngineError):
    """Raised when a value exceeds the configured maximum size."""
    pass


class TxnTooBigError(EngineError):
    """Raised when a transaction buffers more entries than allowed."""
    pass


class TxnConflictError(EngineError):
    """Raised on commit when a key read by the transaction changed since it started."""
    pass


class TxnClosedError(EngineError):
    """Raised when a committed or discarded transaction is used again."""
    pass


class ReadOnlyTxnError(EngineError):
    """Raised when writing through a read-only transaction."""
    pass


class WALCorruptionError(EngineError):
    """Raised when WAL data is corrupted or invalid."""
    pass


class SSTableError(EngineError):
    """Raised when SSTable operations fail."""
    pass


class RecoveryError(EngineError):
    """Raised when recovery from persistent state fails."""
    pass


class CompactionError(EngineError):
    """Raised when compaction operations fail."""
    pass


class StoreLockedError(EngineError):
    """Raised when another live process holds the store directory."""
    pass
