"""Wire encoding of a single chunk.

Layout (all integers 32-bit big endian):

* chunk ID
* timestamp, high 32 bits
* timestamp, low 32 bits
* payload size
* attributes size
* payload bytes
* attribute bytes
"""

from __future__ import annotations

import struct

from .chunkbuffer import Chunk

_HEADER = struct.Struct(">IIIII")
_SIGNED_ID = struct.Struct(">i")
_UINT32 = 0xFFFFFFFF
_UINT64 = 0xFFFFFFFFFFFFFFFF

HEADER_SIZE = _HEADER.size


class ChunkDecodeError(ValueError):
    """A chunk buffer is too short or otherwise malformed."""


def encode_chunk(chunk: Chunk) -> bytes:
    """Encode ``chunk`` as header, payload and attributes."""
    timestamp = chunk.timestamp & _UINT64
    header = _HEADER.pack(
        chunk.id & _UINT32,
        timestamp >> 32,
        timestamp & _UINT32,
        chunk.size,
        chunk.attributes_size,
    )
    return header + bytes(chunk.data) + bytes(chunk.attributes)


def decode_chunk(data: bytes) -> Chunk:
    """Decode a chunk from the start of ``data``; trailing bytes are ignored."""
    data = bytes(data)
    if len(data) < HEADER_SIZE:
        raise ChunkDecodeError("buffer shorter than the chunk header")
    _, ts_high, ts_low, size, attributes_size = _HEADER.unpack_from(data)
    (chunk_id,) = _SIGNED_ID.unpack_from(data)

    payload_end = HEADER_SIZE + size
    if len(data) < payload_end:
        raise ChunkDecodeError("buffer shorter than the chunk payload")
    attributes_end = payload_end + attributes_size
    if len(data) < attributes_end:
        raise ChunkDecodeError("buffer shorter than the chunk attributes")

    return Chunk(
        id=chunk_id,
        data=data[HEADER_SIZE:payload_end],
        timestamp=(ts_high << 32) | ts_low,
        attributes=data[payload_end:attributes_end],
    )