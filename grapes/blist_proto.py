"""Message sending for the gossip protocols that keep a blacklist.

A message is: protocol byte, message type byte, the cache header, this
node's entry, then the entries of the local cache except the destination.
"""

from __future__ import annotations

from typing import Any

from .blist_cache import BlacklistCache
from .msgtypes import MessageType, TopoMessage
from .net import NodeID, Transport
from .topocache import CacheError

MAX_MSG_SIZE = 1500
_TOPO_HEADER_SIZE = 2


class BlacklistProtocol:
    """Newscast and T-Man messages, with blacklisting caches, sent from ``local_id``."""

    def __init__(self, local_id: NodeID, transport: Transport, meta: bytes = b"") -> None:
        meta = bytes(meta)
        self.transport = transport
        self._me = BlacklistCache(1, len(meta), 0)
        self._me.add(local_id, meta)

    @property
    def local_id(self) -> NodeID:
        return self._me.nodes()[0]

    def _payload(self, cache: BlacklistCache, skip: NodeID, max_peers: int) -> bytes:
        room = MAX_MSG_SIZE - _TOPO_HEADER_SIZE
        max_peers = max_peers or MAX_MSG_SIZE
        parts = [cache.header_dump(), self._me.entry_dump(0)]
        used = sum(len(p) for p in parts)
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
        self, dst: NodeID, cache: BlacklistCache, protocol: int, msg_type: int, max_peers: int
    ) -> int:
        message = bytes([int(protocol), int(msg_type)]) + self._payload(cache, dst, max_peers)
        return self.transport.send(self.local_id, dst, message)

    def _reply(
        self,
        remote_cache: BlacklistCache,
        local_cache: BlacklistCache,
        protocol: int,
        msg_type: int,
        max_peers: int,
    ) -> int:
        nodes = remote_cache.nodes()
        if not nodes:
            raise CacheError("the remote cache names no sender")
        return self._send(nodes[0], local_cache, protocol, msg_type, max_peers)

    def ncast_reply(self, remote_cache: BlacklistCache, local_cache: BlacklistCache) -> int:
        """Answer the sender of ``remote_cache`` with ``local_cache``."""
        return self._reply(
            remote_cache, local_cache, MessageType.TOPOLOGY, TopoMessage.NCAST_REPLY, 0
        )

    def tman_reply(
        self, remote_cache: BlacklistCache, local_cache: BlacklistCache, max_peers: int = 0
    ) -> int:
        """Answer a T-Man query with at most ``max_peers`` entries (all if 0)."""
        return self._reply(
            remote_cache, local_cache, MessageType.TMAN, TopoMessage.TMAN_REPLY, max_peers
        )

    def ncast_query(self, local_cache: BlacklistCache, rng: Any = None) -> int:
        """Query a random peer of ``local_cache``; return 0 if the cache is empty.

        Picking the peer marks it as waiting for a reply, or blacklists it if
        it already was.
        """
        entry = local_cache.rand_peer(0, rng)
        if entry is None:
            return 0
        return self.ncast_query_peer(local_cache, entry.node)

    def ncast_query_peer(self, local_cache: BlacklistCache, dst: NodeID) -> int:
        """Send a Newscast query with ``local_cache`` to ``dst``."""
        return self._send(dst, local_cache, MessageType.TOPOLOGY, TopoMessage.NCAST_QUERY, 0)

    def tman_query_peer(
        self, local_cache: BlacklistCache, dst: NodeID, max_peers: int = 0
    ) -> int:
        """Send a T-Man query with at most ``max_peers`` entries to ``dst``."""
        return self._send(dst, local_cache, MessageType.TMAN, TopoMessage.TMAN_QUERY, max_peers)

    def update_metadata(self, meta: bytes) -> bool:
        """Replace the metadata sent with this node's entry."""
        return self._me.update_metadata(self.local_id, meta)