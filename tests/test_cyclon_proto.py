import pytest

from grapes.cyclon_proto import CyclonProtocol
from grapes.msgtypes import MessageType, TopoMessage
from grapes.net import MemoryTransport, NodeID
from grapes.topocache import CacheError, PeerCache

ME = NodeID("10.2.0.1", 8000)
A = NodeID("10.2.0.2", 8001)
B = NodeID("10.2.0.3", 8002)
X = NodeID("10.2.0.9", 8009)


def make_cache():
    cache = PeerCache(4, 3)
    cache.add(A, b"aaa")
    cache.add(B, b"bbb")
    return cache


@pytest.fixture
def setup():
    transport = MemoryTransport()
    return CyclonProtocol(ME, transport, b"own"), transport


def test_reply_without_me(setup):
    proto, transport = setup
    remote = PeerCache(2, 3)
    remote.add(X, b"xxx")
    local = make_cache()
    proto.reply(remote, local)
    (message,) = transport.messages_to(X)
    assert message[0] == MessageType.TOPOLOGY
    assert message[1] == TopoMessage.CYCLON_REPLY
    received = PeerCache.undump(message[2:])
    assert received.nodes() == local.nodes()
    assert received.metadata == local.metadata


def test_query_includes_me(setup):
    proto, transport = setup
    sent_cache = make_cache()
    sent = proto.query(sent_cache, X)
    (message,) = transport.messages_to(X)
    assert sent == len(message)
    assert message[1] == TopoMessage.CYCLON_QUERY
    received = PeerCache.undump(message[2:])
    assert received.nodes() == [ME] + sent_cache.nodes()
    assert received[0].meta == b"own"
    assert received.size == sent_cache.size + 1


def test_query_skips_destination(setup):
    proto, transport = setup
    proto.query(make_cache(), A)
    received = PeerCache.undump(transport.messages_to(A)[0][2:])
    assert A not in received


def test_change_metadata(setup):
    proto, transport = setup
    assert proto.change_metadata(b"new") is True
    proto.query(make_cache(), X)
    received = PeerCache.undump(transport.messages_to(X)[0][2:])
    assert received[0].meta == b"new"
    with pytest.raises(CacheError):
        proto.change_metadata(b"ab")