import pytest

from grapes.blist_cache import NOREPLY_FLAG, BlacklistCache, BlacklistEntry
from grapes.net import NodeID
from grapes.topocache import FROM_LOCAL, FROM_REMOTE, CacheError

A = NodeID("10.0.0.1", 4000)
B = NodeID("10.0.0.2", 4000)
C = NodeID("10.0.0.3", 4000)
D = NodeID("10.0.0.4", 4000)


class _Fixed:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


FIRST = _Fixed(0.0)


def _blacklist(cache, node):
    cache.add(node)
    index = cache.nodes().index(node)
    rng = _Fixed(index / len(cache) + 1e-9)
    cache.rand_peer(0, rng)
    return cache.rand_peer(0, rng)


def test_add_inserts_at_front():
    cache = BlacklistCache(4)
    assert cache.add(A) is True
    assert cache.add(B) is True
    assert cache.nodes() == [B, A]
    assert all(e.timestamp == 1 and e.flags == 0 for e in cache)


def test_add_existing_updates_metadata_and_returns_false():
    cache = BlacklistCache(4, 2)
    cache.add(A, b"ab")
    assert cache.add(A, b"cd") is False
    assert cache.metadata == [b"cd"]
    assert len(cache) == 1


def test_add_to_full_cache_raises():
    cache = BlacklistCache(1)
    cache.add(A)
    with pytest.raises(CacheError):
        cache.add(B)


def test_wrong_metadata_size_raises():
    cache = BlacklistCache(2, 4)
    with pytest.raises(CacheError):
        cache.add(A, b"xy")
    cache.add(A)
    with pytest.raises(CacheError):
        cache.update_metadata(A, b"x")


def test_rand_peer_flags_then_blacklists():
    cache = BlacklistCache(3)
    cache.add(A)
    first = cache.rand_peer(0, FIRST)
    assert first.node == A
    assert first.no_reply
    assert cache[0].flags & NOREPLY_FLAG
    second = cache.rand_peer(0, FIRST)
    assert second.node == A
    assert A not in cache
    assert cache.blacklist == (A,)


def test_rand_peer_empty_returns_none():
    assert BlacklistCache(3).rand_peer(0, FIRST) is None


def test_add_clears_noreply_and_leaves_blacklist():
    cache = BlacklistCache(3)
    cache.add(B)
    cache.rand_peer(0, FIRST)
    assert cache.add(B) is False
    assert not cache[0].no_reply
    _blacklist(cache, A)
    assert A in cache.blacklist
    cache.add(A)
    assert A not in cache.blacklist
    assert A in cache


def test_blacklist_drops_oldest_when_full():
    cache = BlacklistCache(2)
    _blacklist(cache, A)
    _blacklist(cache, B)
    assert cache.blacklist == (A, B)
    _blacklist(cache, C)
    assert cache.blacklist == (B, C)


def test_update_ages_entries():
    cache = BlacklistCache(3)
    cache.add(A)
    cache.update()
    cache.update()
    assert cache[0].timestamp == 3


def test_update_timeout_drops_old_entries():
    cache = BlacklistCache(3, 0, 3)
    cache.add(A)
    cache.update_timeout()
    cache.update_timeout()
    assert cache[0].timestamp == 3
    cache.update_timeout()
    assert len(cache) == 0


def test_remove():
    cache = BlacklistCache(3)
    cache.add(A)
    cache.add(B)
    assert cache.remove(A) is True
    assert cache.remove(A) is False
    assert cache.nodes() == [B]


def test_add_ranked_replaces_entry_with_new_metadata():
    def by_value(target, m1, m2):
        return 2 if m1[0] > m2[0] else 1

    cache = BlacklistCache(4, 1)
    cache.add_ranked(A, b"\x01", by_value, b"")
    cache.add_ranked(B, b"\x05", by_value, b"")
    assert cache.nodes() == [A, B]
    assert cache.add_ranked(A, b"\x09", by_value, b"") is True
    assert cache.nodes() == [B, A]
    assert cache.add_ranked(A, b"\x09", by_value, b"") is False
    assert len(cache) == 2


def test_header_dump_wire_format():
    assert BlacklistCache(5, 3).header_dump() == b"\x00\x00\x00\x05\x00\x00\x00\x03"


def test_entry_dump_wire_format():
    cache = BlacklistCache(4, 1)
    cache.add(A, b"\x07")
    assert cache.entry_dump(0) == b"\x00\x00\x00\x01\x00" + A.dump() + b"\x07"


def test_entry_dump_skips_last_slot():
    cache = BlacklistCache(2)
    cache.add(A)
    cache.add(B)
    assert cache.entry_dump(1) == b""


def test_dump_undump_round_trip():
    cache = BlacklistCache(4, 2)
    cache.add(A, b"aa")
    cache.add(B, b"bb")
    cache.rand_peer(0, FIRST)
    cache.update()
    data = cache.header_dump() + cache.entry_dump(0) + cache.entry_dump(1)
    copy = BlacklistCache.undump(data)
    assert copy.size == cache.size
    assert copy.metadata_size == cache.metadata_size
    assert copy.entries == cache.entries


def test_undump_truncated_raises():
    cache = BlacklistCache(4, 2)
    cache.add(A, b"aa")
    data = cache.header_dump() + cache.entry_dump(0)
    with pytest.raises(CacheError):
        BlacklistCache.undump(data[:-1])


def test_rank_by_timestamp_excludes_target_and_keeps_blacklist():
    cache = BlacklistCache(4)
    cache.add(A)
    cache.update()
    cache.add(B)
    _blacklist(cache, D)
    ranked = cache.rank(None, B)
    assert ranked.nodes() == [A]
    assert ranked.blacklist == cache.blacklist
    stamps = [e.timestamp for e in cache.rank()]
    assert stamps == sorted(stamps)


def test_union_fresher_wins_and_blacklist_filters():
    local = BlacklistCache(4)
    local.add(A)
    local.update()
    local.update()
    _blacklist(local, C)
    remote = BlacklistCache(4)
    remote.add(C)
    remote.add(A)
    remote.add(B)
    # B is the sender: first entry of the remote cache.
    assert remote.nodes()[0] == B
    merged = local.union(remote)
    assert set(merged.nodes()) == {A, B}
    assert merged[merged.nodes().index(A)].timestamp == 1
    assert merged.blacklist == (C,)
    assert len(merged) <= merged.size


def test_union_never_keeps_sender_blacklisted():
    local = BlacklistCache(4)
    _blacklist(local, B)
    remote = BlacklistCache(4)
    remote.add(B)
    merged = local.union(remote)
    assert B not in merged.blacklist
    assert B in merged


def test_union_clears_sender_noreply():
    local = BlacklistCache(4)
    local.add(B)
    local.rand_peer(0, FIRST)
    remote = BlacklistCache(4)
    remote.add(B)
    remote.update()
    merged = local.union(remote)
    assert not merged[0].no_reply


def test_union_metadata_size_mismatch_raises():
    with pytest.raises(CacheError):
        BlacklistCache(2, 1).union(BlacklistCache(2, 2))


def test_merge_reports_sources_and_filters_blacklist():
    local = BlacklistCache(4)
    local.add(A)
    _blacklist(local, C)
    remote = BlacklistCache(4)
    remote.add(C)
    remote.add(B)
    merged, source = local.merge(remote, 3)
    assert set(merged.nodes()) == {A, B}
    assert C not in merged
    assert source == FROM_LOCAL | FROM_REMOTE
    assert merged.blacklist == (C,)


def test_merge_limits_size():
    local = BlacklistCache(4)
    local.add(A)
    local.add(B)
    remote = BlacklistCache(4)
    remote.add(C)
    remote.add(D)
    merged, _ = local.merge(remote, 2)
    assert len(merged) == 2
    assert merged.size == 2


def test_resize_shrinks_entries_and_blacklist():
    cache = BlacklistCache(3)
    _blacklist(cache, A)
    _blacklist(cache, B)
    _blacklist(cache, C)
    cache.add(D)
    assert cache.resize(1) == 1
    assert cache.blacklist == (C,)
    assert cache.size == 1
    assert cache.resize(5) == 1


def test_entry_no_reply_property():
    assert BlacklistEntry(A, flags=NOREPLY_FLAG).no_reply
    assert not BlacklistEntry(A).no_reply