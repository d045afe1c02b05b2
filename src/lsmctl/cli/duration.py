"""Parsing of Go-style duration strings such as "300ms", "1.5h" or "2h45m"."""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([-+]?)((?:{_COMPONENT})+)")
_COMPONENT_RE = re.compile(_COMPONENT)


def parse_duration(text: str) -> timedelta:
    """Parse a duration made of number+unit components, e.g. "1h30m".

    A bare "0" is accepted. Raises ValueError for anything else that does not
    follow the grammar.
    """
    text = text.strip()
    if text in ("0", "+0", "-0"):
        return timedelta(0)

    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid duration {text!r}")

    seconds = sum(
        float(number) * _UNIT_SECONDS[unit]
        for number, unit in _COMPONENT_RE.findall(match.group(2))
    )
    if match.group(1) == "-":
        seconds = -seconds
    try:
        return timedelta(seconds=seconds)
    except OverflowError:
        raise ValueError(f"invalid duration {text!r}: out of range") from None
