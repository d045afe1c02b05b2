"""lsmctl - inspect and mutate an embedded LSM key-value store."""

from .core.access import EntryOptions, KVStore, ListResult, open_store
from .core.codec import ValueFormat, decode
from .core.config import EngineConfig, load_config
from .core.errors import (
    ConfigError,
    DecodeError,
    EngineError,
    KVError,
    NotFoundError,
    StorageError,
    UnsupportedFormatError,
)
from .core.memory import MemoryEngine
from .core.store import LSMEngine
from .core.types import Entry, IteratorOptions, Key, Value, Version

__all__ = [
    "EntryOptions",
    "KVStore",
    "ListResult",
    "open_store",
    "ValueFormat",
    "decode",
    "EngineConfig",
    "load_config",
    "ConfigError",
    "DecodeError",
    "EngineError",
    "KVError",
    "NotFoundError",
    "StorageError",
    "UnsupportedFormatError",
    "MemoryEngine",
    "LSMEngine",
    "Entry",
    "IteratorOptions",
    "Key",
    "Value",
    "Version",
]
