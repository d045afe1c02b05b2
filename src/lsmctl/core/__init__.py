"""Engines and the access layer."""

from .access import KVStore, open_store
from .memory import MemoryEngine
from .store import LSMEngine

__all__ = ["KVStore", "open_store", "LSMEngine", "MemoryEngine"]
