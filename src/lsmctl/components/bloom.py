"""Per-table bloom filter.

Lets point lookups skip tables that cannot hold a key. Positions come from
double hashing over one blake2b digest.
"""

from __future__ import annotations

import hashlib
import math
import struct

from ..core.types import Key

# [version(1B)][m(4B)][k(4B)][bits]
HEADER = struct.Struct("<BII")
FORMAT_VERSION = 2


class SimpleBloomFilter:
    """Fixed-size bit array answering "maybe present" or "absent".

    Args:
        expected_elements: Distinct keys the table will hold
        false_positive_rate: Acceptable share of absent keys reported present

    Invariants:
        - A key that was added is always reported present
        - Absent keys are reported present at roughly the target rate
        - m and k never change after construction
    """

    def __init__(self, expected_elements: int, false_positive_rate: float = 0.01):
        if not 0 < false_positive_rate < 1:
            raise ValueError(f"false_positive_rate must be in (0, 1), got {false_positive_rate}")
        n = max(1, expected_elements)

        # m = -n * ln(p) / (ln(2)^2), k = (m/n) * ln(2)
        self.m = max(8, math.ceil(-n * math.log(false_positive_rate) / (math.log(2) ** 2)))
        self.k = max(1, round((self.m / n) * math.log(2)))
        self.bits = bytearray((self.m + 7) // 8)

    def _positions(self, key: Key):
        digest = hashlib.blake2b(key, digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        h2 = int.from_bytes(digest[8:], "little") | 1
        for i in range(self.k):
            yield (h1 + i * h2) % self.m

    def add(self, key: Key) -> None:
        """Set the bits for key."""
        for pos in self._positions(key):
            self.bits[pos >> 3] |= 1 << (pos & 7)

    def __contains__(self, key: Key) -> bool:
        """False means the key was never added."""
        return all(self.bits[pos >> 3] & (1 << (pos & 7)) for pos in self._positions(key))

    def serialize(self) -> bytes:
        """Header plus raw bit array, stored after the table meta JSON."""
        return HEADER.pack(FORMAT_VERSION, self.m, self.k) + bytes(self.bits)

    @classmethod
    def deserialize(cls, data: bytes) -> SimpleBloomFilter:
        """Rebuild a filter written by serialize()."""
        version, m, k = HEADER.unpack_from(data)
        if version != FORMAT_VERSION:
            raise ValueError(f"bloom filter format {version} is not supported")

        bf = cls.__new__(cls)
        bf.m = m
        bf.k = k
        bf.bits = bytearray(data[HEADER.size :])
        if len(bf.bits) != (m + 7) // 8:
            raise ValueError("Bloom filter bit array length does not match header")
        return bf
