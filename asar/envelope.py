from __future__ import annotations

import struct
from typing import Tuple

from .constants import ENVELOPE_ALIGNMENT, ENVELOPE_PREFIX_SIZE, ENVELOPE_SIZE_FIELD, U32_MAX
from .errors import MalformedHeader


# Envelope prefix (fixed 16 bytes), all little endian:
#  - size_field u32 (always 4: byte size of header_size)
#  - header_size u32 (padded_json_len + 8)
#  - pickle_size u32 (padded_json_len + 4: json_len field + padded payload)
#  - json_len u32 (unpadded JSON byte length)
_ENVELOPE_STRUCT = struct.Struct("<IIII")


def padded_length(n: int) -> int:
    return n + (-n % ENVELOPE_ALIGNMENT)


def encode_header(json_text: str) -> bytes:
    """Wrap a JSON header string in the binary envelope.

    Returns the prefix, the UTF-8 payload, and its NUL padding; the data blob
    starts immediately after the returned bytes.
    """
    payload = json_text.encode("utf-8")
    json_len = len(payload)
    padded = padded_length(json_len)
    header_size = padded + 8
    if header_size > U32_MAX:
        raise MalformedHeader("Header JSON too large for envelope")
    prefix = _ENVELOPE_STRUCT.pack(ENVELOPE_SIZE_FIELD, header_size, padded + 4, json_len)
    return prefix + payload + b"\x00" * (padded - json_len)


def decode_header(data) -> Tuple[bytes, int]:
    """Parse the envelope at the start of ``data``.

    Returns ``(json_bytes, data_offset)`` where ``data_offset`` is the
    absolute position of the data blob. Padding is not validated beyond its
    length.
    """
    if len(data) < ENVELOPE_PREFIX_SIZE:
        raise MalformedHeader("Archive too short for header envelope")
    size_field, header_size, pickle_size, json_len = _ENVELOPE_STRUCT.unpack_from(data, 0)
    if size_field != ENVELOPE_SIZE_FIELD:
        raise MalformedHeader(f"Bad envelope size field: {size_field}")
    if header_size != pickle_size + 4:
        raise MalformedHeader("Envelope header size inconsistent with padded JSON length")
    if pickle_size < json_len + 4:
        raise MalformedHeader("Padded JSON length shorter than JSON length")
    data_offset = 8 + header_size
    if data_offset > len(data):
        raise MalformedHeader("Header runs past end of archive")
    start = ENVELOPE_PREFIX_SIZE
    return bytes(data[start : start + json_len]), data_offset
