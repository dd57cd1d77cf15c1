"""Peer caches that remember unresponsive peers in a blacklist.

Works like :class:`grapes.topocache.PeerCache`, but every entry also carries
flags. When a peer is picked by :meth:`BlacklistCache.rand_peer` it is marked
as waiting for a reply; if it is picked again before it answers it is moved
to a blacklist, and blacklisted peers are kept out of the cache when caches
are merged. The blacklist holds at most as many peers as the cache does.
"""

from __future__ import annotations

import random
import struct
from dataclasses import dataclass, replace
from typing import Any, Iterator

from .net import NodeID
from .topocache import FROM_LOCAL, FROM_REMOTE, CacheError, RankingFunction

NOREPLY_FLAG = 0x01

_HEADER = struct.Struct(">II")
_TIMESTAMP = struct.Struct(">I")
_UINT32 = 0xFFFFFFFF


@dataclass(frozen=True)
class BlacklistEntry:
    """A known peer, the age of what is known about it, its metadata and flags."""

    node: NodeID
    timestamp: int = 1
    meta: bytes = b""
    flags: int = 0

    @property
    def no_reply(self) -> bool:
        """True if the peer was contacted and has not answered yet."""
        return bool(self.flags & NOREPLY_FLAG)


def _rng(rng: Any) -> Any:
    return random if rng is None else rng


def _clear_noreply(entry: BlacklistEntry) -> BlacklistEntry:
    return replace(entry, flags=entry.flags & ~NOREPLY_FLAG & 0xFF)


class BlacklistCache:
    """At most ``size`` peers with ``metadata_size`` bytes of metadata each.

    When ``max_timestamp`` is not zero, :meth:`update_timeout` drops entries
    that reach that age.
    """

    def __init__(self, size: int, metadata_size: int = 0, max_timestamp: int = 0) -> None:
        if size < 0:
            raise ValueError(f"cache size must not be negative, not {size}")
        if metadata_size < 0:
            raise ValueError(f"metadata size must not be negative, not {metadata_size}")
        self._size = size
        self._metadata_size = metadata_size
        self._max_timestamp = max_timestamp
        self._entries: list[BlacklistEntry] = []
        self._blacklist: list[NodeID] = []

    # -- inspection -------------------------------------------------------

    @property
    def size(self) -> int:
        """Capacity of the cache (and of its blacklist)."""
        return self._size

    @property
    def metadata_size(self) -> int:
        return self._metadata_size

    @property
    def max_timestamp(self) -> int:
        return self._max_timestamp

    @property
    def entries(self) -> tuple[BlacklistEntry, ...]:
        return tuple(self._entries)

    @property
    def metadata(self) -> list[bytes]:
        """Metadata of every entry, in cache order."""
        return [e.meta for e in self._entries]

    @property
    def blacklist(self) -> tuple[NodeID, ...]:
        """Blacklisted nodes, oldest first."""
        return tuple(self._blacklist)

    def nodes(self) -> list[NodeID]:
        """The node IDs in cache order."""
        return [e.node for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BlacklistEntry]:
        return iter(list(self._entries))

    def __getitem__(self, index: int) -> BlacklistEntry:
        return self._entries[index]

    def __contains__(self, node: object) -> bool:
        return self._index(node) is not None

    def __repr__(self) -> str:
        return (
            f"BlacklistCache(size={self._size}, entries={self._entries!r}, "
            f"blacklist={self._blacklist!r})"
        )

    # -- helpers ----------------------------------------------------------

    def _index(self, node: object) -> int | None:
        return next((i for i, e in enumerate(self._entries) if e.node == node), None)

    def _given_meta(self, meta: bytes | None) -> bytes:
        data = bytes(meta or b"")
        if data and len(data) != self._metadata_size:
            raise CacheError(
                f"metadata of {len(data)} bytes, the cache holds {self._metadata_size}"
            )
        return data

    def _same_layout(self, other: BlacklistCache) -> None:
        if other._metadata_size != self._metadata_size:
            raise CacheError("caches hold metadata of different sizes")

    def _blacklisted(self, node: NodeID) -> bool:
        return node in self._blacklist

    def _blacklist_index(self, index: int) -> BlacklistEntry:
        entry = self._entries.pop(index)
        if self._blacklist and len(self._blacklist) >= self._size:
            del self._blacklist[0]
        self._blacklist.append(entry.node)
        return entry

    def _inherit_blacklist(self, source: BlacklistCache, sender: NodeID | None, keep: int) -> None:
        kept = [n for n in source._blacklist if n != sender]
        self._blacklist = kept[max(len(kept) - keep, 0) :]

    @staticmethod
    def _sender(other: BlacklistCache) -> NodeID | None:
        return other._entries[0].node if other._entries else None

    # -- modification -----------------------------------------------------

    def update(self) -> None:
        """Age every entry by one round."""
        self._entries = [replace(e, timestamp=e.timestamp + 1) for e in self._entries]

    def update_timeout(self) -> None:
        """Age every entry by one round, dropping those that reach the maximum age."""
        aged: list[BlacklistEntry] = []
        for entry in self._entries:
            if self._max_timestamp and entry.timestamp == self._max_timestamp:
                # Entries are ordered by age: all the following are older.
                break
            aged.append(replace(entry, timestamp=entry.timestamp + 1))
        self._entries = aged

    def add(self, node: NodeID, meta: bytes = b"") -> bool:
        """Add ``node`` at the front with timestamp 1 and no flags.

        If the node is already present its metadata is updated, its no-reply
        flag cleared and False returned. Raises :class:`CacheError` if the
        cache is full. An added node leaves the blacklist.
        """
        return self.add_ranked(node, meta, None, b"")

    def add_ranked(
        self,
        node: NodeID,
        meta: bytes = b"",
        rank: RankingFunction | None = None,
        target_meta: bytes = b"",
    ) -> bool:
        """Add ``node`` at the place given by ``rank`` against ``target_meta``.

        With a ranking function an existing entry whose metadata differs from
        ``meta`` is replaced; one with the same metadata only has its no-reply
        flag cleared and False is returned.
        """
        given = self._given_meta(meta)
        index = self._index(node)
        if index is not None:
            current = self._entries[index]
            if rank is not None and given and current.meta != given:
                del self._entries[index]
            else:
                if rank is None and given:
                    current = replace(current, meta=given)
                self._entries[index] = _clear_noreply(current)
                return False
        new_meta = given or bytes(self._metadata_size)
        position = 0
        if rank is not None:
            position = sum(1 for e in self._entries if rank(target_meta, new_meta, e.meta) == 2)
        if len(self._entries) == self._size:
            raise CacheError("cache is full")
        self._entries.insert(position, BlacklistEntry(node, 1, new_meta, 0))
        if node in self._blacklist:
            self._blacklist.remove(node)
        return True

    def remove(self, node: NodeID) -> bool:
        """Remove ``node``; return False if it was not present."""
        index = self._index(node)
        if index is None:
            return False
        del self._entries[index]
        return True

    def update_metadata(self, node: NodeID, meta: bytes) -> bool:
        """Replace the metadata of ``node``; return False if it is not present."""
        data = bytes(meta)
        if not data or len(data) != self._metadata_size:
            raise CacheError(
                f"metadata of {len(data)} bytes, the cache holds {self._metadata_size}"
            )
        index = self._index(node)
        if index is None:
            return False
        self._entries[index] = replace(self._entries[index], meta=data)
        return True

    def resize(self, size: int) -> int:
        """Change the capacity, dropping the oldest entries and blacklisted nodes.

        Returns the new number of entries.
        """
        if size < 0:
            raise ValueError(f"cache size must not be negative, not {size}")
        del self._entries[size:]
        if len(self._blacklist) > size:
            self._blacklist = self._blacklist[len(self._blacklist) - size :]
        self._size = size
        return len(self._entries)

    # -- random selection ---------------------------------------------------

    def rand_peer(self, max_index: int = 0, rng: Any = None) -> BlacklistEntry | None:
        """Pick a random entry among the first ``max_index + 1`` (all if 0).

        A peer picked for the first time is marked as waiting for a reply and
        its updated entry returned. A peer picked again while still waiting
        is moved to the blacklist and its entry returned. None if empty.
        """
        if not self._entries:
            return None
        if not max_index or max_index >= len(self._entries):
            limit = len(self._entries)
        else:
            limit = max_index + 1
        index = int(_rng(rng).random() * limit)
        entry = self._entries[index]
        if entry.no_reply:
            return self._blacklist_index(index)
        flagged = replace(entry, flags=entry.flags | NOREPLY_FLAG)
        self._entries[index] = flagged
        return flagged

    # -- combining caches -----------------------------------------------------

    def rank(
        self,
        ranking: RankingFunction | None = None,
        target: NodeID | None = None,
        target_meta: bytes = b"",
    ) -> BlacklistCache:
        """A new cache ordered by ``ranking`` (by timestamp if None), without ``target``.

        The blacklist is copied unchanged.
        """
        result = BlacklistCache(self._size, self._metadata_size, self._max_timestamp)
        for entry in self._entries:
            if target is not None and entry.node == target:
                continue
            if ranking is not None:
                position = sum(
                    1 for r in result._entries if ranking(target_meta, entry.meta, r.meta) == 2
                )
            else:
                position = sum(1 for r in result._entries if r.timestamp < entry.timestamp)
            result._entries.insert(position, entry)
        result._blacklist = list(self._blacklist)
        return result

    def union(self, other: BlacklistCache) -> BlacklistCache:
        """Every entry of both caches, this one being the local cache.

        The first entry of ``other`` is its sender: it is never kept in the
        blacklist and its no-reply flag is cleared. For common nodes the
        fresher information wins; blacklisted nodes of ``other`` are left out.
        """
        self._same_layout(other)
        capacity = len(self) + len(other)
        result = BlacklistCache(capacity, self._metadata_size, self._max_timestamp)
        result._entries = list(self._entries)
        result._inherit_blacklist(self, self._sender(other), capacity)
        for n, entry in enumerate(other._entries):
            index = result._index(entry.node)
            if index is not None:
                if n == 0:
                    result._entries[index] = _clear_noreply(result._entries[index])
                current = result._entries[index]
                if current.timestamp > entry.timestamp:
                    meta = entry.meta if self._metadata_size else current.meta
                    result._entries[index] = replace(
                        current, timestamp=entry.timestamp, flags=entry.flags, meta=meta
                    )
            elif not result._blacklisted(entry.node):
                result._entries.append(entry)
        return result

    def merge(self, other: BlacklistCache, new_size: int) -> tuple[BlacklistCache, int]:
        """Merge both caches freshest first into a new cache of ``new_size``.

        This cache is the local one: the most recent ``new_size`` nodes of its
        blacklist (never the sender, the first entry of ``other``) carry over
        and keep those nodes of ``other`` out. Returns the cache and a mask of
        :data:`FROM_LOCAL` and :data:`FROM_REMOTE` telling where entries came from.
        """
        self._same_layout(other)
        result = BlacklistCache(new_size, self._metadata_size, self._max_timestamp)
        result._inherit_blacklist(self, self._sender(other), new_size)
        mine, theirs = self._entries, other._entries
        n1 = n2 = 0
        source = 0
        while len(result) < new_size:
            if n1 == len(mine) and n2 == len(theirs):
                break
            if n1 < len(mine) and (n2 == len(theirs) or theirs[n2].timestamp > mine[n1].timestamp):
                entry = mine[n1]
                n1 += 1
                if result._index(entry.node) is None:
                    result._entries.append(entry)
                    source |= FROM_LOCAL
            else:
                entry = theirs[n2]
                n2 += 1
                if result._index(entry.node) is None and not result._blacklisted(entry.node):
                    result._entries.append(entry)
                    source |= FROM_REMOTE
        return result, source

    # -- wire format ----------------------------------------------------------

    def header_dump(self) -> bytes:
        """Capacity and metadata size, 32-bit big endian."""
        return _HEADER.pack(self._size & _UINT32, self._metadata_size)

    def entry_dump(self, index: int) -> bytes:
        """Timestamp, flags byte, dumped node ID and metadata of an entry.

        Entries at or past the last slot of the cache (except the first one)
        are not sent, and give empty bytes.
        """
        if index and index >= self._size - 1:
            return b""
        entry = self._entries[index]
        return (
            _TIMESTAMP.pack(entry.timestamp & _UINT32)
            + bytes([entry.flags & 0xFF])
            + entry.node.dump()
            + entry.meta
        )

    @classmethod
    def undump(cls, data: bytes) -> BlacklistCache:
        """Build a cache from a header followed by dumped entries."""
        data = bytes(data)
        if len(data) < _HEADER.size:
            raise CacheError("buffer shorter than the cache header")
        cache_size, metadata_size = _HEADER.unpack_from(data)
        cache = cls(cache_size, metadata_size, 0)
        offset = _HEADER.size
        while offset < len(data):
            if len(cache._entries) == cache_size:
                raise CacheError("more entries than the cache can hold")
            if offset + _TIMESTAMP.size + 1 > len(data):
                raise CacheError("truncated entry header")
            (timestamp,) = _TIMESTAMP.unpack_from(data, offset)
            offset += _TIMESTAMP.size
            flags = data[offset]
            offset += 1
            try:
                node, used = NodeID.undump(data[offset:])
            except ValueError as exc:
                raise CacheError(f"bad node ID: {exc}") from exc
            offset += used
            meta = data[offset : offset + metadata_size]
            if len(meta) != metadata_size:
                raise CacheError("truncated entry metadata")
            offset += metadata_size
            cache._entries.append(BlacklistEntry(node, timestamp, meta, flags))
        return cache