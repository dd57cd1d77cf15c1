"""Bounded caches of known peers, ordered by the age of what is known.

Every entry carries a timestamp counting how many gossip rounds old the
information is; entries are kept in non-decreasing timestamp order, the
freshest first. Each entry may carry a fixed-size block of opaque metadata.
"""

from __future__ import annotations

import random
import struct
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Iterator

from .net import NodeID

RankingFunction = Callable[[bytes, bytes, bytes], int]
"""``rank(target_meta, meta1, meta2)``: 1 if the first ranks first, 2 if the second does, 0 on a tie."""

FROM_LOCAL = 0x01
FROM_REMOTE = 0x02

_HEADER = struct.Struct(">II")
_TIMESTAMP = struct.Struct(">I")
_UINT32 = 0xFFFFFFFF
_FRESHER = -1
_FULL = -2


class CacheError(Exception):
    """A cache operation could not be carried out."""


@dataclass(frozen=True)
class CacheEntry:
    """A known peer, the age of the information about it and its metadata."""

    node: NodeID
    timestamp: int = 1
    meta: bytes = b""


def _rng(rng: Any) -> Any:
    return random if rng is None else rng


class PeerCache:
    """At most ``size`` peers, each with ``metadata_size`` bytes of metadata.

    When ``max_timestamp`` is not zero, :meth:`update` drops entries that
    reach that age.
    """

    def __init__(self, size: int, metadata_size: int = 0, max_timestamp: int = 0) -> None:
        if size < 0:
            raise ValueError(f"cache size must not be negative, not {size}")
        if metadata_size < 0:
            raise ValueError(f"metadata size must not be negative, not {metadata_size}")
        self._size = size
        self._metadata_size = metadata_size
        self._max_timestamp = max_timestamp
        self._entries: list[CacheEntry] = []

    # -- inspection -------------------------------------------------------

    @property
    def size(self) -> int:
        """Capacity of the cache."""
        return self._size

    @property
    def metadata_size(self) -> int:
        return self._metadata_size

    @property
    def max_timestamp(self) -> int:
        return self._max_timestamp

    @property
    def entries(self) -> tuple[CacheEntry, ...]:
        return tuple(self._entries)

    @property
    def metadata(self) -> list[bytes]:
        """Metadata of every entry, in cache order."""
        return [e.meta for e in self._entries]

    def nodes(self) -> list[NodeID]:
        """The node IDs in cache order."""
        return [e.node for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(list(self._entries))

    def __getitem__(self, index: int) -> CacheEntry:
        return self._entries[index]

    def __contains__(self, node: object) -> bool:
        return self._index(node) is not None

    def __repr__(self) -> str:
        return f"PeerCache(size={self._size}, entries={self._entries!r})"

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

    def _same_layout(self, other: PeerCache) -> None:
        if other._metadata_size != self._metadata_size:
            raise CacheError("caches hold metadata of different sizes")

    def _insert(self, entry: CacheEntry) -> int:
        """Insert keeping timestamp order; a fresher entry replaces an older one."""
        if len(self._entries) == self._size:
            return _FULL
        position = 0
        for i, current in enumerate(self._entries):
            if current.timestamp <= entry.timestamp:
                position = i + 1
            if current.node == entry.node:
                if current.timestamp > entry.timestamp:
                    del self._entries[i]
                    self._entries.insert(position, entry)
                    return position
                return _FRESHER
        self._entries.insert(position, entry)
        return position

    def _target(self, target_size: int) -> int:
        if target_size <= 0 or target_size > self._size:
            return self._size
        return target_size

    # -- modification -----------------------------------------------------

    def copy(self) -> PeerCache:
        """An independent copy whose capacity is its current number of entries."""
        new = PeerCache(len(self._entries), self._metadata_size, self._max_timestamp)
        new._entries = list(self._entries)
        return new

    def update(self) -> None:
        """Age every entry by one round, dropping those that reach the maximum age."""
        aged: list[CacheEntry] = []
        for entry in self._entries:
            if self._max_timestamp and entry.timestamp == self._max_timestamp:
                # Entries are ordered by age: all the following are older.
                break
            aged.append(replace(entry, timestamp=entry.timestamp + 1))
        self._entries = aged

    def add(self, node: NodeID, meta: bytes = b"") -> bool:
        """Add ``node`` at the front with timestamp 1.

        If the node is already present its metadata is updated and False is
        returned. Raises :class:`CacheError` if the cache is full.
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

        With a ranking function an existing entry for the node is replaced;
        without one this behaves as :meth:`add`.
        """
        given = self._given_meta(meta)
        index = self._index(node)
        if index is not None:
            if rank is None:
                if given:
                    self._entries[index] = replace(self._entries[index], meta=given)
                return False
            del self._entries[index]
        new_meta = given or bytes(self._metadata_size)
        position = 0
        if rank is not None:
            position = sum(1 for e in self._entries if rank(target_meta, new_meta, e.meta) == 2)
        if len(self._entries) == self._size:
            raise CacheError("cache is full")
        self._entries.insert(position, CacheEntry(node, 1, new_meta))
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
        """Change the capacity, dropping the oldest entries if needed; return the length."""
        if size < 0:
            raise ValueError(f"cache size must not be negative, not {size}")
        del self._entries[size:]
        self._size = size
        return len(self._entries)

    # -- random selection ---------------------------------------------------

    def rand_peer(self, max_index: int = 0, rng: Any = None) -> CacheEntry | None:
        """A random entry among the first ``max_index + 1`` (all if 0); None if empty."""
        if not self._entries:
            return None
        if not max_index or max_index >= len(self._entries):
            limit = len(self._entries)
        else:
            limit = max_index + 1
        return self._entries[int(_rng(rng).random() * limit)]

    def last_peer(self) -> NodeID | None:
        """The oldest node, or None if the cache is empty."""
        return self._entries[-1].node if self._entries else None

    def _take_random(self, n: int, excluded: Iterable[NodeID], rng: Any) -> PeerCache:
        excluded_nodes = set(excluded)
        n = min(n, len(self._entries))
        result = PeerCache(n, self._metadata_size, self._max_timestamp)
        seen: set[NodeID] = set()
        for entry in _rng(rng).sample(self._entries, len(self._entries)):
            if len(result) >= n - len(seen):
                break
            if entry.node in excluded_nodes:
                seen.add(entry.node)
                continue
            result._insert(entry)
            self._entries.remove(entry)
        return result

    def rand_cache(self, n: int, rng: Any = None) -> PeerCache:
        """Move ``n`` random entries (fewer if not available) into a new cache."""
        return self._take_random(n, (), rng)

    def rand_cache_except(self, n: int, excluded: Iterable[NodeID], rng: Any = None) -> PeerCache:
        """As :meth:`rand_cache`, leaving out ``excluded``; each excluded node met lowers ``n``."""
        return self._take_random(n, excluded, rng)

    # -- filling from another cache -------------------------------------------

    def _fill(self, entries: Iterable[CacheEntry], target: int) -> None:
        for entry in entries:
            if len(self._entries) >= target:
                break
            self._insert(entry)

    def fill_random(self, src: PeerCache, target_size: int = 0, rng: Any = None) -> int | None:
        """Insert random entries of ``src`` until ``target_size`` is reached.

        ``target_size`` of 0 or beyond the capacity means the capacity.
        Returns the new length, or None if the cache already held enough.
        """
        self._same_layout(src)
        self.check()
        src.check()
        target = self._target(target_size)
        if len(self._entries) >= target:
            return None
        self._fill(_rng(rng).sample(src._entries, len(src._entries)), target)
        self.check()
        return len(self._entries)

    def fill_ordered(self, src: PeerCache, target_size: int = 0) -> int | None:
        """As :meth:`fill_random`, taking entries of ``src`` freshest first."""
        self._same_layout(src)
        self.check()
        src.check()
        target = self._target(target_size)
        if len(self._entries) >= target:
            return None
        self._fill(list(src._entries), target)
        self.check()
        return len(self._entries)

    def add_cache(self, src: PeerCache) -> int:
        """Insert entries of ``src`` in order until full; return the new length."""
        self._same_layout(src)
        self.check()
        src.check()
        self._fill(list(src._entries), self._size)
        self.check()
        return len(self._entries)

    # -- combining caches -----------------------------------------------------

    def rank(
        self,
        ranking: RankingFunction | None = None,
        target: NodeID | None = None,
        target_meta: bytes = b"",
    ) -> PeerCache:
        """A new cache ordered by ``ranking`` (by timestamp if None), without ``target``."""
        result = PeerCache(self._size, self._metadata_size, self._max_timestamp)
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
        return result

    def union(self, other: PeerCache) -> PeerCache:
        """Every entry of both caches; for common nodes the fresher information wins."""
        self._same_layout(other)
        result = PeerCache(len(self) + len(other), self._metadata_size, self._max_timestamp)
        result._entries = list(self._entries)
        for entry in other._entries:
            index = result._index(entry.node)
            if index is None:
                result._entries.append(entry)
            elif result._entries[index].timestamp > entry.timestamp:
                result._entries[index] = replace(
                    result._entries[index], timestamp=entry.timestamp, meta=entry.meta
                )
        return result

    def merge(self, other: PeerCache, new_size: int) -> tuple[PeerCache, int]:
        """Merge both caches freshest first into a new cache of ``new_size``.

        Returns the cache and a mask of where its entries came from:
        :data:`FROM_LOCAL` for this cache, :data:`FROM_REMOTE` for ``other``.
        """
        self._same_layout(other)
        result = PeerCache(new_size, self._metadata_size, self._max_timestamp)
        mine, theirs = self._entries, other._entries
        n1 = n2 = 0
        source = 0
        while len(result) < new_size:
            if n1 == len(mine) and n2 == len(theirs):
                break
            if n1 < len(mine) and (n2 == len(theirs) or theirs[n2].timestamp > mine[n1].timestamp):
                entry, flag = mine[n1], FROM_LOCAL
                n1 += 1
            else:
                entry, flag = theirs[n2], FROM_REMOTE
                n2 += 1
            if result._index(entry.node) is None:
                result._entries.append(entry)
                source |= flag
        return result, source

    def check(self) -> None:
        """Raise :class:`CacheError` unless timestamps are ordered and nodes unique."""
        previous = 0
        seen: set[NodeID] = set()
        for i, entry in enumerate(self._entries):
            if entry.timestamp < previous:
                raise CacheError(
                    f"entry {i - 1} has timestamp {previous} > entry {i} timestamp {entry.timestamp}"
                )
            previous = entry.timestamp
            if entry.node in seen:
                raise CacheError(f"node {entry.node} appears twice")
            seen.add(entry.node)

    # -- wire format ----------------------------------------------------------

    def header_dump(self, include_me: bool = False) -> bytes:
        """Capacity (plus one with ``include_me``) and metadata size, 32-bit big endian."""
        size = self._size + (1 if include_me else 0)
        return _HEADER.pack(size & _UINT32, self._metadata_size)

    def entry_dump(self, index: int) -> bytes:
        """Timestamp, dumped node ID and metadata of an entry.

        Entries at or past the last slot of the cache (except the first one)
        are not sent, and give empty bytes.
        """
        if index and index >= self._size - 1:
            return b""
        entry = self._entries[index]
        return _TIMESTAMP.pack(entry.timestamp & _UINT32) + entry.node.dump() + entry.meta

    @classmethod
    def undump(cls, data: bytes) -> PeerCache:
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
            if offset + _TIMESTAMP.size > len(data):
                raise CacheError("truncated entry timestamp")
            (timestamp,) = _TIMESTAMP.unpack_from(data, offset)
            offset += _TIMESTAMP.size
            try:
                node, used = NodeID.undump(data[offset:])
            except ValueError as exc:
                raise CacheError(f"bad node ID: {exc}") from exc
            offset += used
            meta = data[offset : offset + metadata_size]
            if len(meta) != metadata_size:
                raise CacheError("truncated entry metadata")
            offset += metadata_size
            cache._entries.append(CacheEntry(node, timestamp, meta))
        return cache

    def describe(self, name: str | None = None) -> str:
        """A human-readable dump of the cache."""
        lines = [
            f"### dumping cache ({name if name else 'none'})",
            f"\tcache_size={self._size}, current_size={len(self._entries)}",
        ]
        lines += [f"\t{i}: {e.node.addr()}[{e.timestamp}]" for i, e in enumerate(self._entries)]
        return "\n".join(lines) + "\n\n-----------------------------\n"