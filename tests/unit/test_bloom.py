"""Unit tests for Bloom filter implementation."""

import pytest

from lsmctl.components.bloom import SimpleBloomFilter


def test_bloom_no_false_negatives():
    """Test every added key is reported as present."""
    bf = SimpleBloomFilter(1000, 0.01)
    keys = [f"key{i}".encode() for i in range(1000)]
    for key in keys:
        bf.add(key)

    assert all(key in bf for key in keys)


def test_bloom_false_positive_rate():
    """Test the observed false positive rate stays near the target."""
    bf = SimpleBloomFilter(1000, 0.01)
    for i in range(1000):
        bf.add(f"key{i}".encode())

    false_positives = sum(f"other{i}".encode() in bf for i in range(10000))
    assert false_positives / 10000 < 0.05


def test_bloom_empty_filter():
    """Test an empty filter contains nothing."""
    bf = SimpleBloomFilter(0, 0.01)

    assert b"anything" not in bf


def test_bloom_serialize_roundtrip():
    """Test a deserialized filter answers like the original."""
    bf = SimpleBloomFilter(100, 0.01)
    for i in range(100):
        bf.add(f"key{i}".encode())

    restored = SimpleBloomFilter.deserialize(bf.serialize())

    assert (restored.m, restored.k) == (bf.m, bf.k)
    assert all(f"key{i}".encode() in restored for i in range(100))


def test_bloom_deserialize_rejects_bad_input():
    """Test unknown versions and truncated bit arrays are rejected."""
    data = SimpleBloomFilter(100, 0.01).serialize()

    with pytest.raises(ValueError):
        SimpleBloomFilter.deserialize(b"\x09" + data[1:])
    with pytest.raises(ValueError):
        SimpleBloomFilter.deserialize(data[:-1])


@pytest.mark.parametrize("rate", [0, 1, -0.5, 1.5])
def test_bloom_invalid_rate(rate):
    """Test false positive rates outside (0, 1) are rejected."""
    with pytest.raises(ValueError):
        SimpleBloomFilter(10, rate)
