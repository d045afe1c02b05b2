"""Value codec.

Renders stored value bytes in a human-readable display format.
"""

from __future__ import annotations

import json
from enum import Enum

from .errors import DecodeError, UnsupportedFormatError

INT64_WIDTH = 8


class ValueFormat(str, Enum):
    """Display formats understood by decode()."""

    STRING = "string"
    INT64_AS_BYTES = "int64AsBytes"
    JSON = "json"

    @classmethod
    def parse(cls, fmt: ValueFormat | str) -> ValueFormat:
        try:
            return cls(fmt)
        except ValueError:
            raise UnsupportedFormatError(str(fmt)) from None


def _decode_string(raw: bytes) -> str:
    return raw.decode("utf-8", errors="backslashreplace")


def _decode_int64(raw: bytes) -> str:
    if len(raw) != INT64_WIDTH:
        raise DecodeError(
            f"int64AsBytes requires exactly {INT64_WIDTH} bytes, got {len(raw)}"
        )
    return str(int.from_bytes(raw, "big", signed=False))


def _reject_constant(name: str):
    raise DecodeError(f"invalid JSON: {name} is not a JSON value")


def _decode_json(raw: bytes) -> str:
    try:
        doc = json.loads(raw, parse_constant=_reject_constant)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"invalid JSON: {e}") from e
    except RecursionError as e:
        raise DecodeError("invalid JSON: nesting too deep") from e

    if not isinstance(doc, list) or not all(isinstance(obj, dict) for obj in doc):
        raise DecodeError("JSON value must be an array of objects")

    # Two-space indent, sorted keys
    try:
        return json.dumps(doc, indent=2, sort_keys=True, ensure_ascii=False)
    except RecursionError as e:
        raise DecodeError("JSON value nested too deep to display") from e


_DECODERS = {
    ValueFormat.STRING: _decode_string,
    ValueFormat.INT64_AS_BYTES: _decode_int64,
    ValueFormat.JSON: _decode_json,
}


def decode(raw: bytes, fmt: ValueFormat | str = ValueFormat.STRING) -> str:
    """Render raw value bytes in the requested format.

    Args:
        raw: Stored value bytes
        fmt: One of "string", "int64AsBytes" or "json"

    Returns:
        The display string

    Raises:
        UnsupportedFormatError: fmt is not a known format
        DecodeError: raw cannot be interpreted in fmt
    """
    return _DECODERS[ValueFormat.parse(fmt)](bytes(raw))
