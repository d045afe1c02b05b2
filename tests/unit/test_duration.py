"""Unit tests for Go-style duration parsing."""

from datetime import timedelta

import pytest

from lsmctl.cli.duration import parse_duration


@pytest.mark.parametrize(
    "text, expected",
    [
        ("10s", timedelta(seconds=10)),
        ("300ms", timedelta(milliseconds=300)),
        ("1.5h", timedelta(minutes=90)),
        ("2h45m", timedelta(hours=2, minutes=45)),
        ("1h0m30s", timedelta(hours=1, seconds=30)),
        ("250us", timedelta(microseconds=250)),
        ("250µs", timedelta(microseconds=250)),
        (".5s", timedelta(milliseconds=500)),
        ("0", timedelta(0)),
        ("-5m", timedelta(minutes=-5)),
        ("+5m", timedelta(minutes=5)),
    ],
)
def test_parse_duration(text, expected):
    """Test valid durations."""
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "10", "5x", "h", "1.5", "1h 30m", "--1s", "ms10"])
def test_parse_duration_invalid(text):
    """Test malformed durations raise ValueError."""
    with pytest.raises(ValueError):
        parse_duration(text)


@pytest.mark.parametrize("text", ["999999999999h", "9" * 400 + "h"])
def test_parse_duration_out_of_range(text):
    """Test durations too large for timedelta raise ValueError."""
    with pytest.raises(ValueError, match="invalid duration"):
        parse_duration(text)
