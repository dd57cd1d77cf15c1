import pytest

from grapes.chunkid_codec import (
    NO_SET_TYPE,
    SignalingDecodeError,
    decode_chunk_signaling,
    encode_chunk_signaling,
)
from grapes.chunkidset import ChunkIDSet, SetType


def test_priority_wire_bytes():
    data = encode_chunk_signaling(ChunkIDSet(SetType.PRIORITY, ids=[5, 3]))
    assert data == bytes.fromhex("00000002 00000002 00000000 00000005 00000003")


def test_bitmap_wire_bytes():
    data = encode_chunk_signaling(ChunkIDSet(SetType.BITMAP, ids=[3, 5, 10]))
    assert data == bytes.fromhex("00000008 00000001 00000000 00000003 85")


def test_no_set_wire_bytes():
    data = encode_chunk_signaling(None, b"\x01")
    assert data == bytes.fromhex("00000000 ffffffff 00000001 01")
    assert NO_SET_TYPE == 0xFFFFFFFF


def test_priority_round_trip_keeps_order():
    cset = ChunkIDSet(SetType.PRIORITY, ids=[7, 2, 9])
    decoded, meta = decode_chunk_signaling(encode_chunk_signaling(cset, b"abc"))
    assert decoded.set_type is SetType.PRIORITY
    assert list(decoded) == [7, 2, 9]
    assert meta == b"abc"


def test_bitmap_round_trip():
    cset = ChunkIDSet(SetType.BITMAP, ids=[100, 3, 42, 17])
    decoded, meta = decode_chunk_signaling(encode_chunk_signaling(cset, b"xy"))
    assert decoded.set_type is SetType.BITMAP
    assert list(decoded) == list(cset)
    assert meta == b"xy"


def test_bitmap_round_trip_negative_ids():
    cset = ChunkIDSet(SetType.BITMAP, ids=[-5, -3])
    decoded, _ = decode_chunk_signaling(encode_chunk_signaling(cset))
    assert list(decoded) == [-5, -3]


@pytest.mark.parametrize("set_type", list(SetType))
def test_empty_set_round_trip(set_type):
    decoded, meta = decode_chunk_signaling(encode_chunk_signaling(ChunkIDSet(set_type)))
    assert decoded.set_type is set_type
    assert len(decoded) == 0
    assert meta == b""


def test_no_set_round_trip():
    decoded, meta = decode_chunk_signaling(encode_chunk_signaling(None, b"meta"))
    assert decoded is None
    assert meta == b"meta"


def test_priority_wrong_length_raises():
    data = encode_chunk_signaling(ChunkIDSet(ids=[1, 2]))
    with pytest.raises(SignalingDecodeError):
        decode_chunk_signaling(data + b"\x00")


def test_bitmap_truncated_raises():
    data = encode_chunk_signaling(ChunkIDSet(SetType.BITMAP, ids=[1, 30]), b"zz")
    with pytest.raises(SignalingDecodeError):
        decode_chunk_signaling(data[:-3])


def test_unknown_type_raises():
    data = bytearray(encode_chunk_signaling(ChunkIDSet(ids=[1])))
    data[7] = 7
    with pytest.raises(SignalingDecodeError):
        decode_chunk_signaling(bytes(data))


def test_short_header_raises():
    with pytest.raises(SignalingDecodeError):
        decode_chunk_signaling(b"\x00" * 11)


def test_truncated_metadata_without_set_raises():
    data = encode_chunk_signaling(None, b"four")
    with pytest.raises(SignalingDecodeError):
        decode_chunk_signaling(data[:-1])