"""Unit tests for the SSTable catalog."""

import shutil
import tempfile
from pathlib import Path

import pytest

from lsmctl.components.catalog import SimpleSSTableCatalog
from lsmctl.core.errors import RecoveryError


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def catalog_path(temp_dir):
    return Path(temp_dir) / "catalog.json"


def make_meta(name, max_version=1):
    return {
        "data_file": f"{name}.data",
        "meta_file": f"{name}.meta",
        "min_key": "61",
        "max_key": "7a",
        "min_version": 1,
        "max_version": max_version,
        "count": 1,
        "data_size": 10,
        "index": [["61", 0]],
    }


def test_catalog_starts_empty(catalog_path):
    """Test a fresh catalog has no tables and no flushed version."""
    catalog = SimpleSSTableCatalog(catalog_path, max_levels=3)

    assert catalog.get_all_sstables() == []
    assert catalog.flushed_version == 0
    assert catalog.max_version() == 0
    assert not catalog_path.exists()


def test_catalog_add_and_reload(catalog_path):
    """Test registered tables and counters persist across reloads."""
    catalog = SimpleSSTableCatalog(catalog_path, max_levels=3)
    assert catalog.allocate_file_id() == 1
    assert catalog.allocate_file_id() == 2
    catalog.add_sstable(0, make_meta("a", max_version=5), flushed_version=5)
    catalog.add_sstable(1, make_meta("b", max_version=3))

    reloaded = SimpleSSTableCatalog(catalog_path, max_levels=3)

    assert [m["data_file"] for m in reloaded.list_level(0)] == ["a.data"]
    assert [m["data_file"] for m in reloaded.list_level(1)] == ["b.data"]
    assert reloaded.flushed_version == 5
    assert reloaded.next_file_id == 3
    assert reloaded.max_version() == 5


def test_catalog_replace_sstables(catalog_path):
    """Test compaction inputs are swapped for outputs in one update."""
    catalog = SimpleSSTableCatalog(catalog_path, max_levels=3)
    a, b, c = make_meta("a"), make_meta("b"), make_meta("c")
    catalog.add_sstable(0, a)
    catalog.add_sstable(1, b)

    catalog.replace_sstables([a, b], 1, [c])

    assert catalog.list_level(0) == []
    assert [m["data_file"] for m in catalog.list_level(1)] == ["c.data"]
    reloaded = SimpleSSTableCatalog(catalog_path, max_levels=3)
    assert [(lvl, m["data_file"]) for lvl, m in reloaded.get_all_sstables()] == [(1, "c.data")]


def test_catalog_invalid_level(catalog_path):
    """Test out-of-range levels are rejected or empty."""
    catalog = SimpleSSTableCatalog(catalog_path, max_levels=2)

    with pytest.raises(ValueError):
        catalog.add_sstable(5, make_meta("a"))
    assert catalog.list_level(7) == []


def test_catalog_corrupt_file(catalog_path):
    """Test an unreadable manifest raises RecoveryError."""
    catalog_path.write_text("{not json")

    with pytest.raises(RecoveryError):
        SimpleSSTableCatalog(catalog_path)


def test_catalog_level_beyond_max(catalog_path):
    """Test a manifest with more levels than configured is rejected."""
    catalog = SimpleSSTableCatalog(catalog_path, max_levels=4)
    catalog.add_sstable(3, make_meta("a"))

    with pytest.raises(RecoveryError):
        SimpleSSTableCatalog(catalog_path, max_levels=2)
