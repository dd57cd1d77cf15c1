"""Node identifiers and the transport used to send messages to peers."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import NamedTuple

_PORT = struct.Struct(">H")


@dataclass(frozen=True, order=True)
class NodeID:
    """Address of a peer: an IP address in string form and a port.

    Node IDs compare equal when both address and port match, and have a
    consistent ordering usable for keeping lists sorted.
    """

    ip: str
    port: int

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")
        if len(self.ip.encode("ascii")) > 0xFF:
            raise ValueError("address too long")

    def dump(self) -> bytes:
        """Serialise as: address length (1 byte), address, port (2 bytes, big endian)."""
        raw = self.ip.encode("ascii")
        return bytes([len(raw)]) + raw + _PORT.pack(self.port)

    @classmethod
    def undump(cls, data: bytes) -> tuple[NodeID, int]:
        """Read a node ID from the start of ``data``.

        Returns the node and the number of bytes consumed.
        """
        view = bytes(data)
        if not view:
            raise ValueError("empty node ID buffer")
        length = view[0]
        end = 1 + length + _PORT.size
        if len(view) < end:
            raise ValueError("truncated node ID")
        ip = view[1 : 1 + length].decode("ascii")
        (port,) = _PORT.unpack_from(view, 1 + length)
        return cls(ip, port), end

    def addr(self) -> str:
        """Printable representation, ``ip:port``."""
        return f"{self.ip}:{self.port}"

    def __str__(self) -> str:
        return self.addr()


class Transport(ABC):
    """Something able to deliver a message from one node to another."""

    @abstractmethod
    def send(self, src: NodeID, dst: NodeID, data: bytes) -> int:
        """Send ``data`` from ``src`` to ``dst``; return the number of bytes sent."""


class SentMessage(NamedTuple):
    src: NodeID
    dst: NodeID
    data: bytes


@dataclass
class MemoryTransport(Transport):
    """Transport that keeps every message in memory, in the order sent."""

    sent: list[SentMessage] = field(default_factory=list)

    def send(self, src: NodeID, dst: NodeID, data: bytes) -> int:
        payload = bytes(data)
        self.sent.append(SentMessage(src, dst, payload))
        return len(payload)

    def messages_to(self, dst: NodeID) -> list[bytes]:
        """Payloads sent to ``dst``, oldest first."""
        return [m.data for m in self.sent if m.dst == dst]