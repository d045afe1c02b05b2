"""Unit tests for leveled compaction."""

import shutil
import tempfile
from pathlib import Path

import pytest

from lsmctl.components.catalog import SimpleSSTableCatalog
from lsmctl.components.compaction import SimpleCompactor
from lsmctl.components.sstable import SimpleSSTableReader, SimpleSSTableWriter
from lsmctl.core.config import EngineConfig
from lsmctl.core.types import Entry


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def compactor(temp_dir):
    config = EngineConfig(data_dir=temp_dir, index_interval=4)
    catalog = SimpleSSTableCatalog(Path(temp_dir) / "catalog.json", max_levels=config.max_levels)
    return SimpleCompactor(config, temp_dir, catalog)


def write_table(compactor, entries):
    file_id = compactor.catalog.allocate_file_id()
    writer = SimpleSSTableWriter(
        compactor.data_dir / f"in-{file_id}.data", compactor.data_dir / f"in-{file_id}.meta"
    )
    for entry in sorted(entries, key=lambda e: e.sort_key()):
        writer.add(entry)
    return writer.finalize()


def read_all(compactor, metas):
    result = []
    for meta in metas:
        with SimpleSSTableReader(
            compactor.data_dir / meta["data_file"], compactor.data_dir / meta["meta_file"]
        ) as reader:
            result.extend((e.key, e.version, e.value, e.deleted) for e in reader.scan(b"", 1 << 62))
    return result


def test_compaction_keeps_newest_version(compactor):
    """Test shadowed versions below the discard point are removed."""
    old = write_table(compactor, [Entry.put(b"a", b"a1", version=1), Entry.put(b"b", b"b1", version=2)])
    new = write_table(compactor, [Entry.put(b"a", b"a2", version=3)])

    outputs = compactor.compact([old, new], 1, discard_version=10, drop_deleted=False, now=0)

    assert read_all(compactor, outputs) == [(b"a", 3, b"a2", False), (b"b", 2, b"b1", False)]
    assert outputs[0]["data_file"].startswith("sst-1-")


def test_compaction_keeps_versions_visible_to_snapshots(compactor):
    """Test versions an open snapshot may still read are retained."""
    table = write_table(
        compactor,
        [
            Entry.put(b"a", b"a1", version=1),
            Entry.put(b"a", b"a2", version=2),
            Entry.put(b"a", b"a3", version=3),
        ],
    )

    outputs = compactor.compact([table], 1, discard_version=2, drop_deleted=True, now=0)

    assert [(k, v) for k, v, _, _ in read_all(compactor, outputs)] == [(b"a", 3), (b"a", 2)]


def test_compaction_drops_tombstones_at_bottom(compactor):
    """Test tombstones and the versions they shadow vanish when nothing is below."""
    table = write_table(
        compactor,
        [Entry.put(b"a", b"a1", version=1), Entry.tombstone(b"a", version=2), Entry.put(b"b", b"b1", version=3)],
    )

    outputs = compactor.compact([table], 1, discard_version=10, drop_deleted=True, now=0)

    assert read_all(compactor, outputs) == [(b"b", 3, b"b1", False)]


def test_compaction_keeps_tombstones_above_deeper_data(compactor):
    """Test tombstones survive when deeper levels may hold older values."""
    table = write_table(compactor, [Entry.put(b"a", b"a1", version=1), Entry.tombstone(b"a", version=2)])

    outputs = compactor.compact([table], 1, discard_version=10, drop_deleted=False, now=0)

    assert read_all(compactor, outputs) == [(b"a", 2, b"", True)]


def test_compaction_drops_expired(compactor):
    """Test expired entries are removed at the bottom level."""
    table = write_table(
        compactor,
        [Entry.put(b"a", b"v", version=1, expires_at=100), Entry.put(b"b", b"v", version=2, expires_at=500)],
    )

    outputs = compactor.compact([table], 1, discard_version=10, drop_deleted=True, now=200)

    assert [k for k, _, _, _ in read_all(compactor, outputs)] == [b"b"]


def test_compaction_splits_large_output(temp_dir):
    """Test outputs are split at sstable_max_bytes."""
    config = EngineConfig(data_dir=temp_dir, sstable_max_bytes=200)
    catalog = SimpleSSTableCatalog(Path(temp_dir) / "catalog.json")
    compactor = SimpleCompactor(config, temp_dir, catalog)
    table = write_table(compactor, [Entry.put(f"k{i:03d}".encode(), b"x" * 50, version=1) for i in range(20)])

    outputs = compactor.compact([table], 2, discard_version=10, drop_deleted=True, now=0)

    assert len(outputs) > 1
    assert len(read_all(compactor, outputs)) == 20
    assert all(m["data_file"].startswith("sst-2-") for m in outputs)


def test_compaction_empty_input(compactor):
    """Test compacting nothing produces nothing."""
    assert compactor.compact([], 1, discard_version=0, drop_deleted=True, now=0) == []


def test_compaction_all_entries_dropped(compactor):
    """Test a merge that removes every entry writes no tables."""
    table = write_table(compactor, [Entry.tombstone(b"a", version=1)])

    assert compactor.compact([table], 1, discard_version=5, drop_deleted=True, now=0) == []
