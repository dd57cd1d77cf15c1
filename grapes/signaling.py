"""Chunk signaling: requests, offers, buffer maps and acknowledgements.

A signaling message is the message type byte followed by a chunk ID set
encoded by :func:`grapes.chunkid_codec.encode_chunk_signaling`, whose
metadata is: signal type (1 byte), max_deliver (1 byte), transaction ID
(16 bits, little endian) and, optionally, the dumped node ID of the peer
the message is about.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from .chunkid_codec import SignalingDecodeError, decode_chunk_signaling, encode_chunk_signaling
from .chunkidset import ChunkIDSet
from .msgtypes import MessageType
from .net import NodeID, Transport

_SIG_HEADER = struct.Struct("<BBH")
_MAX_META_LEN = 1024
_MAX_MSG_LEN = 2048


class SignalType(IntEnum):
    """Kind of signaling message; values are the codes used on the wire."""

    REQUEST = 1
    DELIVER = 2
    OFFER = 4
    ACCEPT = 6
    SEND_BUFFERMAP = 10
    ACK = 11
    REQUEST_BUFFERMAP = 12
    REQUEST_SECURED_DATA_CHUNK = 13
    REQUEST_SECURED_DATA_LOGIN = 14


class SignalingError(ValueError):
    """A signaling message could not be built or parsed."""


@dataclass
class Signal:
    """A parsed signaling message."""

    type: SignalType
    cset: ChunkIDSet | None
    max_deliver: int
    trans_id: int
    owner: NodeID | None = None


def parse_signaling(data: bytes) -> Signal:
    """Parse what follows the message type byte of a signaling message."""
    try:
        cset, meta = decode_chunk_signaling(data)
    except SignalingDecodeError as exc:
        raise SignalingError(str(exc)) from exc
    if not meta:
        raise SignalingError("signaling message without metadata")
    if len(meta) < _SIG_HEADER.size:
        raise SignalingError("signaling metadata too short")
    code, max_deliver, trans_id = _SIG_HEADER.unpack_from(meta)
    try:
        sig_type = SignalType(code)
    except ValueError:
        raise SignalingError(f"invalid signaling message type {code}") from None
    owner = None
    if len(meta) > _SIG_HEADER.size:
        try:
            owner, _ = NodeID.undump(meta[_SIG_HEADER.size :])
        except ValueError as exc:
            raise SignalingError(f"bad owner node ID: {exc}") from exc
    return Signal(sig_type, cset, max_deliver, trans_id, owner)


class ChunkSignaling:
    """Sends signaling messages from ``local_id`` through ``transport``."""

    def __init__(self, local_id: NodeID, transport: Transport) -> None:
        self.local_id = local_id
        self.transport = transport

    def _send(
        self,
        sig_type: SignalType,
        to: NodeID,
        owner: NodeID | None,
        cset: ChunkIDSet | None,
        max_deliver: int,
        trans_id: int,
    ) -> int:
        if not 0 <= trans_id <= 0xFFFF:
            raise ValueError(f"transaction ID out of range: {trans_id}")
        # max_deliver travels in a single byte; larger values are truncated.
        meta = _SIG_HEADER.pack(sig_type, max_deliver & 0xFF, trans_id)
        if owner is not None:
            meta += owner.dump()
        if len(meta) > _MAX_META_LEN:
            raise SignalingError("signaling metadata too large")
        message = bytes([MessageType.SIGNALLING]) + encode_chunk_signaling(cset, meta)
        if len(message) > _MAX_MSG_LEN:
            raise SignalingError("signaling message too large")
        return self.transport.send(self.local_id, to, message)

    def request_chunks(self, to: NodeID, cset: ChunkIDSet, max_deliver: int, trans_id: int) -> int:
        """Ask ``to`` for at most ``max_deliver`` chunks out of ``cset``."""
        return self._send(SignalType.REQUEST, to, None, cset, max_deliver, trans_id)

    def deliver_chunks(self, to: NodeID, cset: ChunkIDSet, trans_id: int) -> int:
        """Announce which requested chunks will be delivered."""
        return self._send(SignalType.DELIVER, to, None, cset, 0, trans_id)

    def offer_chunks(self, to: NodeID, cset: ChunkIDSet, max_deliver: int, trans_id: int) -> int:
        """Offer ``cset`` to ``to``, sending at most ``max_deliver`` of them."""
        return self._send(SignalType.OFFER, to, None, cset, max_deliver, trans_id)

    def accept_chunks(self, to: NodeID, cset: ChunkIDSet, trans_id: int) -> int:
        """Accept the chunks of ``cset`` out of an earlier offer."""
        return self._send(SignalType.ACCEPT, to, None, cset, 0, trans_id)

    def send_buffer_map(
        self,
        to: NodeID,
        owner: NodeID | None,
        bmap: ChunkIDSet | None,
        cb_size: int,
        trans_id: int,
    ) -> int:
        """Send the buffer map of ``owner`` (this node if None) to ``to``."""
        owner = self.local_id if owner is None else owner
        return self._send(SignalType.SEND_BUFFERMAP, to, owner, bmap, cb_size, trans_id)

    def request_buffer_map(self, to: NodeID, owner: NodeID | None, trans_id: int) -> int:
        """Ask ``to`` for the buffer map of ``owner`` (this node if None)."""
        owner = self.local_id if owner is None else owner
        return self._send(SignalType.REQUEST_BUFFERMAP, to, owner, None, 0, trans_id)

    def send_ack(self, to: NodeID, cset: ChunkIDSet, trans_id: int) -> int:
        """Acknowledge the chunks of ``cset``."""
        return self._send(SignalType.ACK, to, None, cset, 0, trans_id)

    def request_secured_data_chunk(self, to: NodeID, cset: ChunkIDSet, trans_id: int) -> int:
        """Ask the server ``to`` for the secured data of ``cset``."""
        return self._send(SignalType.REQUEST_SECURED_DATA_CHUNK, to, None, cset, 1, trans_id)

    def request_secured_data_login(self, to: NodeID, trans_id: int) -> int:
        """Ask the server ``to`` for login data."""
        return self._send(SignalType.REQUEST_SECURED_DATA_LOGIN, to, None, None, 0, trans_id)