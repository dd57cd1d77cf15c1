"""Sending chunks to peers and parsing received chunk messages.

A chunk message is: message type (1 byte), transaction ID (16-bit big
endian), then the chunk as encoded by :func:`grapes.chunk_codec.encode_chunk`.
"""

from __future__ import annotations

import struct

from .chunk_codec import ChunkDecodeError, decode_chunk, encode_chunk
from .chunkbuffer import Chunk
from .msgtypes import MessageType
from .net import NodeID, Transport

_TRANSID = struct.Struct(">H")


def _check_transid(transid: int) -> None:
    if not 0 <= transid <= 0xFFFF:
        raise ValueError(f"transaction ID out of range: {transid}")


def parse_chunk_message(data: bytes) -> tuple[Chunk, int]:
    """Parse what follows the message type byte of a chunk message.

    Returns the chunk and the transaction ID.
    """
    data = bytes(data)
    if len(data) < _TRANSID.size:
        raise ChunkDecodeError("buffer shorter than the transaction ID")
    chunk = decode_chunk(data[_TRANSID.size :])
    (transid,) = _TRANSID.unpack_from(data)
    return chunk, transid


class ChunkDelivery:
    """Sends chunks from ``local_id`` through ``transport``."""

    def __init__(self, local_id: NodeID, transport: Transport) -> None:
        self.local_id = local_id
        self.transport = transport

    def _send(self, msg_type: MessageType, to: NodeID, chunk: Chunk, transid: int) -> int:
        _check_transid(transid)
        message = bytes([msg_type]) + _TRANSID.pack(transid) + encode_chunk(chunk)
        return self.transport.send(self.local_id, to, message)

    def send_chunk(self, to: NodeID, chunk: Chunk, transid: int = 0) -> int:
        """Send ``chunk`` to ``to``; return the number of bytes sent."""
        return self._send(MessageType.CHUNK, to, chunk, transid)

    def send_secured_chunk(self, to: NodeID, chunk: Chunk, transid: int = 0) -> int:
        """Send a chunk carrying secured data to ``to``."""
        return self._send(MessageType.SECURED_DATA_CHUNK, to, chunk, transid)

    def send_secured_chunk_login(self, to: NodeID, chunk: Chunk, transid: int = 0) -> int:
        """Send a chunk carrying login data to ``to``."""
        return self._send(MessageType.SECURED_DATA_LOGIN, to, chunk, transid)