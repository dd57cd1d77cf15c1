"""Wire encoding of chunk ID sets together with opaque metadata.

Layout (all integers 32-bit big endian):

* count: number of IDs (priority) or span of the bitmap in bits (bitmap)
* type: 2 for priority, 1 for bitmap, 0xFFFFFFFF when no set is sent
* metadata length
* priority: one ID per entry; bitmap: base ID, then the bitmap bytes
* metadata
"""

from __future__ import annotations

import struct

from .chunkidset import ChunkIDSet, SetType

_HEADER = struct.Struct(">III")
_WORD = struct.Struct(">I")
_SIGNED = struct.Struct(">i")
_UINT32 = 0xFFFFFFFF
NO_SET_TYPE = 0xFFFFFFFF


class SignalingDecodeError(ValueError):
    """A chunk signaling buffer is malformed."""


def _encode_priority(cset: ChunkIDSet, meta_len: int) -> bytes:
    ids = [chunk_id & _UINT32 for chunk_id in cset]
    header = _HEADER.pack(len(ids), SetType.PRIORITY, meta_len)
    return header + struct.pack(f">{len(ids)}I", *ids)


def _encode_bitmap(cset: ChunkIDSet, meta_len: int) -> bytes:
    values = [chunk_id & _UINT32 for chunk_id in cset]
    if values:
        base = min(values)
        span = max(values) - base + 1
    else:
        base = span = 0
    bitmap = bytearray((span + 7) // 8)
    for value in values:
        offset = value - base
        bitmap[offset // 8] |= 1 << (offset % 8)
    header = _HEADER.pack(span, SetType.BITMAP, meta_len)
    return header + _WORD.pack(base) + bytes(bitmap)


def encode_chunk_signaling(cset: ChunkIDSet | None, meta: bytes = b"") -> bytes:
    """Encode ``cset`` (or no set at all) followed by ``meta``."""
    meta = bytes(meta)
    if cset is None:
        body = _HEADER.pack(0, NO_SET_TYPE, len(meta))
    elif cset.set_type is SetType.PRIORITY:
        body = _encode_priority(cset, len(meta))
    else:
        body = _encode_bitmap(cset, len(meta))
    return body + meta


def decode_chunk_signaling(data: bytes) -> tuple[ChunkIDSet | None, bytes]:
    """Decode a buffer made by :func:`encode_chunk_signaling`.

    Returns the set (None if none was sent) and the metadata.
    """
    data = bytes(data)
    if len(data) < _HEADER.size:
        raise SignalingDecodeError("buffer shorter than the header")
    count, type_code, meta_len = _HEADER.unpack_from(data)

    if type_code == NO_SET_TYPE:
        cset = None
        offset = _HEADER.size
    else:
        try:
            set_type = SetType(type_code)
        except ValueError:
            raise SignalingDecodeError(f"unknown set type {type_code}") from None
        cset = ChunkIDSet(set_type, count)
        if set_type is SetType.PRIORITY:
            offset = _HEADER.size + 4 * count
            if len(data) != offset + meta_len:
                raise SignalingDecodeError("wrong length for a priority set")
            for chunk_id in struct.unpack_from(f">{count}i", data, _HEADER.size):
                cset.add(chunk_id)
        else:
            byte_count = (count + 7) // 8
            offset = _HEADER.size + 4 + byte_count
            if len(data) < offset + meta_len:
                raise SignalingDecodeError("wrong length for a bitmap set")
            (base,) = _SIGNED.unpack_from(data, _HEADER.size)
            bitmap = data[_HEADER.size + 4 : offset]
            for bit in range(count):
                if bitmap[bit // 8] & (1 << (bit % 8)):
                    cset.add(base + bit)

    meta = data[offset : offset + meta_len]
    if len(meta) != meta_len:
        raise SignalingDecodeError("truncated metadata")
    return cset, meta