"""Building and sending the gossip messages shared by the topology protocols.

A topology message is: protocol byte, message type byte, an optional
protocol-specific header, then a dumped peer cache: the cache header
followed by the entries of the cache. The sender may put its own entry
first, and the destination is never listed.
"""

from __future__ import annotations

from typing import Protocol as _Protocol

from .net import NodeID, Transport
from .topocache import CacheError, PeerCache

PACKET_SIZE = 60 * 1024
_DEFAULT_MAX_PEERS = 1000
_TOPO_HEADER_SIZE = 2


class _DumpableCache(_Protocol):
    def nodes(self) -> list[NodeID]: ...

    def header_dump(self, include_me: bool = False) -> bytes: ...

    def entry_dump(self, index: int) -> bytes: ...


class TopoProtocol:
    """Sends topology gossip from ``local_id`` through ``transport``.

    ``meta`` is the metadata of this node, sent with its own entry.
    """

    def __init__(self, local_id: NodeID, transport: Transport, meta: bytes = b"") -> None:
        meta = bytes(meta)
        self.transport = transport
        self._me = PeerCache(1, len(meta), 0)
        self._me.add(local_id, meta)

    @property
    def local_id(self) -> NodeID:
        return self._me.nodes()[0]

    @property
    def my_entry(self) -> PeerCache:
        """The one-entry cache describing this node."""
        return self._me

    def _payload(
        self,
        cache: _DumpableCache,
        skip: NodeID | None,
        max_peers: int,
        include_me: bool,
        room: int,
    ) -> bytes:
        max_peers = max_peers or _DEFAULT_MAX_PEERS
        parts = [cache.header_dump(include_me)]
        used = len(parts[0])
        if include_me:
            mine = self._me.entry_dump(0)
            parts.append(mine)
            used += len(mine)
            max_peers -= 1
        for index, node in enumerate(cache.nodes()):
            if not max_peers:
                break
            if node == skip:
                continue
            dump = cache.entry_dump(index)
            if used + len(dump) > room:
                raise CacheError("too many entries for one packet")
            parts.append(dump)
            used += len(dump)
            max_peers -= 1
        return b"".join(parts)

    def _send(
        self,
        dst: NodeID,
        cache: _DumpableCache,
        protocol: int,
        msg_type: int,
        max_peers: int,
        include_me: bool,
        header: bytes,
    ) -> int:
        header = bytes(header)
        room = PACKET_SIZE - _TOPO_HEADER_SIZE
        if len(header) > room:
            raise CacheError("protocol header too large for one packet")
        payload = self._payload(cache, dst, max_peers, include_me, room - len(header))
        message = bytes([int(protocol), int(msg_type)]) + header + payload
        return self.transport.send(self.local_id, dst, message)

    def reply(
        self,
        remote_cache: _DumpableCache,
        local_cache: _DumpableCache,
        protocol: int,
        msg_type: int,
        max_peers: int = 0,
        include_me: bool = False,
        header: bytes = b"",
    ) -> int:
        """Answer the sender of ``remote_cache`` (its first entry) with ``local_cache``.

        At most ``max_peers`` entries are sent (all if 0). Returns the number
        of bytes sent.
        """
        nodes = remote_cache.nodes()
        if not nodes:
            raise CacheError("the remote cache names no sender")
        return self._send(nodes[0], local_cache, protocol, msg_type, max_peers, include_me, header)

    def query_peer(
        self,
        local_cache: _DumpableCache,
        dst: NodeID,
        protocol: int,
        msg_type: int,
        max_peers: int = 0,
        header: bytes = b"",
    ) -> int:
        """Send this node's entry and ``local_cache`` to ``dst``; return the bytes sent."""
        return self._send(dst, local_cache, protocol, msg_type, max_peers, True, header)

    def update_metadata(self, meta: bytes) -> bool:
        """Replace the metadata sent with this node's entry."""
        return self._me.update_metadata(self.local_id, meta)