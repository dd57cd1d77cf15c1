import random

import pytest

from grapes.msgtypes import MessageType, TopoMessage
from grapes.ncast_proto import NcastProtocol
from grapes.net import MemoryTransport, NodeID
from grapes.topocache import CacheError, PeerCache

ME = NodeID("10.1.0.1", 7000)
A = NodeID("10.1.0.2", 7001)
B = NodeID("10.1.0.3", 7002)
C = NodeID("10.1.0.4", 7003)
X = NodeID("10.1.0.9", 7009)


def make_local():
    cache = PeerCache(5, 1)
    for node, meta in ((A, b"a"), (B, b"b"), (C, b"c")):
        cache.add(node, meta)
    return cache


@pytest.fixture
def setup():
    transport = MemoryTransport()
    return NcastProtocol(ME, transport, b"m"), transport


def test_reply_sends_aged_copy(setup):
    proto, transport = setup
    local = make_local()
    remote = PeerCache(2, 1)
    remote.add(X, b"x")
    proto.reply(remote, local)
    (message,) = transport.messages_to(X)
    assert message[0] == MessageType.TOPOLOGY
    assert message[1] == TopoMessage.NCAST_REPLY
    received = PeerCache.undump(message[2:])
    assert received.size == len(local) + 1
    assert received[0].node == ME
    assert received[0].timestamp == 1
    # The copy holds exactly the entries, so its last slot is never dumped.
    assert received.nodes()[1:] == local.nodes()[:2]
    assert all(e.timestamp == 2 for e in received.entries[1:])
    assert all(e.timestamp == 1 for e in local)


def test_query_empty_cache_sends_nothing(setup):
    proto, transport = setup
    assert proto.query(PeerCache(3, 1), random.Random(1)) == 0
    assert transport.sent == []


def test_query_picks_a_known_peer(setup):
    proto, transport = setup
    local = make_local()
    sent = proto.query(local, random.Random(42))
    (message,) = [m.data for m in transport.sent]
    assert sent == len(message)
    assert transport.sent[0].dst in local
    assert message[1] == TopoMessage.NCAST_QUERY
    received = PeerCache.undump(message[2:])
    assert received.nodes()[0] == ME
    assert transport.sent[0].dst not in received


def test_query_peer(setup):
    proto, transport = setup
    local = make_local()
    proto.query_peer(local, A)
    received = PeerCache.undump(transport.messages_to(A)[0][2:])
    assert received.nodes() == [ME] + [n for n in local.nodes() if n != A]


def test_update_metadata(setup):
    proto, transport = setup
    assert proto.update_metadata(b"q") is True
    proto.query_peer(make_local(), A)
    received = PeerCache.undump(transport.messages_to(A)[0][2:])
    assert received[0].meta == b"q"
    with pytest.raises(CacheError):
        proto.update_metadata(b"")