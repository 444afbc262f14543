"""
Wire codecs for relay messages.

Browser clients speak JSON over text frames; native clients may opt into
MessagePack over binary frames. Both decode to a plain dict envelope with a
"type" discriminator.
"""

import json
from enum import StrEnum
from typing import Any

import msgpack


class WireFormat(StrEnum):
    JSON = "json"
    MSGPACK = "msgpack"


class DecodeError(Exception):
    """Error raised when an inbound frame cannot be turned into a message dict."""


MAX_PAYLOAD_BYTES = 100 * 1024
MAX_STR_LEN = 64 * 1024
MAX_ARRAY_LEN = 4096
MAX_MAP_LEN = 1024


def _stringify_keys(obj: object) -> object:
    """
    Recursively convert integer dict keys to strings.

    Player-keyed maps (seats, ready states, names) use int keys in Python;
    both JSON and MessagePack strict mode expect string keys.
    """
    if isinstance(obj, dict):
        return {str(k) if isinstance(k, int) else k: _stringify_keys(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_stringify_keys(item) for item in obj]
    return obj


def encode(data: dict[str, Any], wire_format: WireFormat = WireFormat.JSON) -> str | bytes:
    """Encode a message dict: str for JSON, bytes for MessagePack."""
    if wire_format == WireFormat.MSGPACK:
        return msgpack.packb(_stringify_keys(data))
    return json.dumps(_stringify_keys(data), separators=(",", ":"))


def decode(raw: str | bytes, max_bytes: int = MAX_PAYLOAD_BYTES) -> dict[str, Any]:
    """
    Decode one inbound frame.

    Text frames are parsed as JSON and binary frames as MessagePack.
    Raises DecodeError if the frame is too large, malformed (including nesting
    deeper than the interpreter can parse), or not a mapping.
    """
    size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
    if size > max_bytes:
        raise DecodeError(f"payload too large: {size} bytes (max {max_bytes})")

    if isinstance(raw, str):
        try:
            result = json.loads(raw)
        except (ValueError, RecursionError) as e:
            raise DecodeError(f"failed to decode JSON data: {e}") from e
    else:
        try:
            result = msgpack.unpackb(
                raw,
                raw=False,
                strict_map_key=False,
                max_str_len=MAX_STR_LEN,
                max_bin_len=MAX_STR_LEN,
                max_array_len=MAX_ARRAY_LEN,
                max_map_len=MAX_MAP_LEN,
            )
        except (msgpack.UnpackException, ValueError, RecursionError) as e:
            raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected dict, got {type(result).__name__}")
    return result
