"""
MessagePack codec for the websocket wire format.

Every frame is a single map with a ``type`` key. Inbound frames are bounded
so a hostile client cannot make the server allocate large structures.
"""

from enum import Enum
from typing import Any

import msgpack

# Inbound size limits.
MAX_BUFFER_LEN = 16 * 1024  # whole frame; the largest inbound action is a few hundred bytes
MAX_STR_LEN = 1024
MAX_BIN_LEN = 1024
MAX_ARRAY_LEN = 64
MAX_MAP_LEN = 32
MAX_EXT_LEN = 0


class DecodeError(Exception):
    """Raised when an inbound frame is not a bounded MessagePack map."""


def _default(obj: object) -> object:
    """Fallback packer for values msgpack does not know natively."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"cannot serialise {type(obj).__name__}")


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data, default=_default, use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode one inbound frame.

    Raises DecodeError if data is oversized, malformed or not a map.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            strict_map_key=True,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")
    return result
