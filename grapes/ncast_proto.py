"""Message sending for the Newscast peer sampling protocol."""

from __future__ import annotations

from typing import Any

from .msgtypes import MessageType, TopoMessage
from .net import NodeID, Transport
from .topo_proto import TopoProtocol
from .topocache import PeerCache


class NcastProtocol:
    """Newscast queries and replies sent from ``local_id``."""

    def __init__(self, local_id: NodeID, transport: Transport, meta: bytes = b"") -> None:
        self._topo = TopoProtocol(local_id, transport, meta)

    @property
    def local_id(self) -> NodeID:
        return self._topo.local_id

    def reply(self, remote_cache: PeerCache, local_cache: PeerCache) -> int:
        """Answer the sender of ``remote_cache`` with an aged copy of ``local_cache``."""
        send_cache = local_cache.copy()
        send_cache.update()
        return self._topo.reply(
            remote_cache,
            send_cache,
            MessageType.TOPOLOGY,
            TopoMessage.NCAST_REPLY,
            0,
            True,
        )

    def query(self, local_cache: PeerCache, rng: Any = None) -> int:
        """Query a random peer of ``local_cache``; return 0 if the cache is empty."""
        entry = local_cache.rand_peer(0, rng)
        if entry is None:
            return 0
        return self.query_peer(local_cache, entry.node)

    def query_peer(self, local_cache: PeerCache, dst: NodeID) -> int:
        """Send a query with ``local_cache`` to ``dst``."""
        return self._topo.query_peer(
            local_cache, dst, MessageType.TOPOLOGY, TopoMessage.NCAST_QUERY, 0
        )

    def update_metadata(self, meta: bytes) -> bool:
        """Replace the metadata sent with this node's entry."""
        return self._topo.update_metadata(meta)