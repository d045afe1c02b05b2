"""End-to-end tests for the lsmctl command line."""

import shutil
import struct
import tempfile
from pathlib import Path

import pytest

from lsmctl import EngineConfig, LSMEngine
from lsmctl.cli.main import build_commands, build_parser, main
from lsmctl.core.types import Entry


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


def run(capsys, *argv):
    """Run the CLI and return (exit status, stdout)."""
    status = main(list(argv))
    return status, capsys.readouterr().out


def test_set_get_roundtrip(temp_dir, capsys):
    """Test a value set through the CLI is printed by get."""
    assert run(capsys, "set", "name", "lsmctl", "--dir", temp_dir) == (0, "")
    assert run(capsys, "get", "name", "--dir", temp_dir) == (0, "lsmctl\n")


def test_get_missing_key_fails(temp_dir, capsys, caplog):
    """Test a missing key exits with status 1 and logs the error."""
    status, out = run(capsys, "get", "missing", "--dir", temp_dir)

    assert status == 1
    assert out == ""
    assert "key missing not found" in caplog.text


def test_get_formats(temp_dir, capsys):
    """Test the --fmt flag selects the decoder."""
    with LSMEngine(EngineConfig(data_dir=temp_dir)) as engine:
        with engine.update() as txn:
            txn.set(b"n", struct.pack(">Q", 1000))
            txn.set(b"doc", b'[{"z": 1, "a": 2}]')

    assert run(capsys, "get", "n", "--fmt", "int64AsBytes", "--dir", temp_dir) == (0, "1000\n")
    status, out = run(capsys, "get", "doc", "--fmt=json", "--dir", temp_dir)
    assert status == 0
    assert out.index('"a"') < out.index('"z"')


def test_get_bad_format_is_usage_error(temp_dir, capsys):
    """Test an unknown --fmt value is rejected by argparse."""
    with pytest.raises(SystemExit) as exc_info:
        main(["get", "k", "--fmt", "hex", "--dir", temp_dir])

    assert exc_info.value.code == 2


def test_list_output(temp_dir, capsys):
    """Test list prints fixed-width rows followed by the total."""
    for key in ["a1", "a2", "a3", "b1"]:
        run(capsys, "set", key, "value", "--dir", temp_dir)

    status, out = run(capsys, "list", "--prefix", "a", "--limit", "2", "--offset", "2", "--dir", temp_dir)

    assert status == 0
    lines = out.splitlines()
    assert lines == [f"{'a3':<30} {7:>10} {3:>10} {'0x00':>5}", "Total: 3"]


def test_list_default_limit(temp_dir, capsys):
    """Test list without flags prints every key of a small store."""
    for key in ["x", "y"]:
        run(capsys, "set", key, "v", "--dir", temp_dir)

    status, out = run(capsys, "list", "--dir", temp_dir)

    assert status == 0
    assert [line.split()[0] for line in out.splitlines()] == ["x", "y", "Total:"]


def test_list_shows_user_meta(temp_dir, capsys):
    """Test the meta column shows printable bytes as characters."""
    with LSMEngine(EngineConfig(data_dir=temp_dir)) as engine:
        with engine.update() as txn:
            txn.set_entry(Entry.put(b"k", b"v", user_meta=ord("B")))

    _, out = run(capsys, "list", "--dir", temp_dir)

    assert out.splitlines()[0].endswith("    B")


def test_delete_multiple_keys(temp_dir, capsys):
    """Test delete removes every key given."""
    for key in ["a", "b", "c"]:
        run(capsys, "set", key, "v", "--dir", temp_dir)

    assert run(capsys, "delete", "a", "b", "--dir", temp_dir) == (0, "")

    _, out = run(capsys, "list", "--dir", temp_dir)
    assert out.splitlines()[-1] == "Total: 1"


def test_set_with_ttl(temp_dir, capsys):
    """Test --ttl is parsed as a Go duration and stored as an expiry."""
    assert run(capsys, "set", "session", "abc", "--ttl", "1h30m", "--dir", temp_dir)[0] == 0

    with LSMEngine(EngineConfig(data_dir=temp_dir)) as engine:
        with engine.view() as txn:
            assert txn.get(b"session").expires_at > 0


def test_set_bad_ttl_is_usage_error(temp_dir):
    """Test a malformed duration exits with status 2."""
    with pytest.raises(SystemExit) as exc_info:
        main(["set", "k", "v", "--ttl", "ten minutes", "--dir", temp_dir])

    assert exc_info.value.code == 2


def test_dir_is_required(capsys):
    """Test --dir must be given."""
    with pytest.raises(SystemExit) as exc_info:
        main(["get", "k"])

    assert exc_info.value.code == 2


def test_config_file(temp_dir, capsys):
    """Test --config tunes the engine and a bad file fails cleanly."""
    good = Path(temp_dir) / "engine.yaml"
    good.write_text("wal_flush_every_write: false\n")
    bad = Path(temp_dir) / "bad.yaml"
    bad.write_text("no_such_option: 1\n")
    store_dir = str(Path(temp_dir) / "store")

    assert run(capsys, "set", "k", "v", "--dir", store_dir, "--config", str(good))[0] == 0
    assert run(capsys, "get", "k", "--dir", store_dir, "--config", str(bad))[0] == 1


def test_locked_store_fails(temp_dir, capsys):
    """Test the CLI reports a store already opened elsewhere."""
    with LSMEngine(EngineConfig(data_dir=temp_dir)):
        status, _ = run(capsys, "get", "k", "--dir", temp_dir)

    assert status == 1


def test_build_commands_table():
    """Test every subcommand has a handler."""
    parser = build_parser()
    commands = build_commands(None)

    assert set(commands) == {"get", "list", "set", "delete"}
    args = parser.parse_args(["delete", "a", "b", "--dir", "/tmp/x", "-vv"])
    assert args.keys == ["a", "b"]
    assert args.verbose == 2


def test_set_huge_ttl_is_usage_error(temp_dir):
    """Test a duration beyond the representable range exits with status 2."""
    with pytest.raises(SystemExit) as exc_info:
        main(["set", "k", "v", "--ttl", "999999999999h", "--dir", temp_dir])

    assert exc_info.value.code == 2


def test_get_invalid_json_fails_cleanly(temp_dir, capsys):
    """Test undecodable JSON values exit with status 1 instead of a traceback."""
    with LSMEngine(EngineConfig(data_dir=temp_dir)) as engine:
        with engine.update() as txn:
            txn.set(b"nan", b'[{"a": NaN}]')
            txn.set(b"deep", b'[{"a":' + b"[" * 100000 + b"]" * 100000 + b"}]")

    assert run(capsys, "get", "nan", "--fmt", "json", "--dir", temp_dir) == (1, "")
    assert run(capsys, "get", "deep", "--fmt", "json", "--dir", temp_dir) == (1, "")
