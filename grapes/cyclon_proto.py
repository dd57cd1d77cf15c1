"""Message sending for the Cyclon peer sampling protocol."""

from __future__ import annotations

from .msgtypes import MessageType, TopoMessage
from .net import NodeID, Transport
from .topo_proto import TopoProtocol
from .topocache import PeerCache


class CyclonProtocol:
    """Cyclon shuffle queries and replies sent from ``local_id``."""

    def __init__(self, local_id: NodeID, transport: Transport, meta: bytes = b"") -> None:
        self._topo = TopoProtocol(local_id, transport, meta)

    @property
    def local_id(self) -> NodeID:
        return self._topo.local_id

    def reply(self, remote_cache: PeerCache, local_cache: PeerCache) -> int:
        """Answer the sender of ``remote_cache`` with ``local_cache``."""
        return self._topo.reply(
            remote_cache,
            local_cache,
            MessageType.TOPOLOGY,
            TopoMessage.CYCLON_REPLY,
            0,
            False,
        )

    def query(self, sent_cache: PeerCache, dst: NodeID) -> int:
        """Send this node's entry and ``sent_cache`` to ``dst``."""
        return self._topo.query_peer(
            sent_cache, dst, MessageType.TOPOLOGY, TopoMessage.CYCLON_QUERY, 0
        )

    def change_metadata(self, meta: bytes) -> bool:
        """Replace the metadata sent with this node's entry."""
        return self._topo.update_metadata(meta)