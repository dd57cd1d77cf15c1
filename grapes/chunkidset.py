"""Sets of chunk IDs, kept either in priority order or sorted."""

from __future__ import annotations

from bisect import bisect_left
from enum import IntEnum
from typing import Iterable, Iterator

_UINT32 = 0xFFFFFFFF


class SetType(IntEnum):
    """How a set orders its IDs and how it is encoded on the wire."""

    BITMAP = 1
    PRIORITY = 2

    @property
    def label(self) -> str:
        return _NAMES[self]


_NAMES = {SetType.PRIORITY: "priority", SetType.BITMAP: "bitmap"}


def parse_set_type(name: str) -> SetType:
    """Map a configuration name to a :class:`SetType`.

    All but the last character of ``name`` must match the start of
    ``"priority"`` or ``"bitmap"``, so ``"priority"``, ``"prioritx"`` and
    ``"bitmaps"`` are all accepted.
    """
    prefix_len = len(name) - 1
    if prefix_len < 0:
        raise ValueError("empty chunk ID set type")
    for set_type in (SetType.PRIORITY, SetType.BITMAP):
        word = _NAMES[set_type]
        if prefix_len <= len(word) and name[:prefix_len] == word[:prefix_len]:
            return set_type
    raise ValueError(f"unknown chunk ID set type: {name!r}")


def _unsigned(chunk_id: int) -> int:
    return chunk_id & _UINT32


class ChunkIDSet:
    """A set of chunk IDs with no duplicates.

    A priority set keeps IDs in insertion order, the position of an ID being
    its priority; a bitmap set keeps them sorted in increasing order.
    """

    def __init__(
        self,
        set_type: SetType | str = SetType.PRIORITY,
        size_hint: int = 0,
        ids: Iterable[int] = (),
    ) -> None:
        if isinstance(set_type, str):
            set_type = parse_set_type(set_type)
        self._type = SetType(set_type)
        self._size_hint = max(size_hint, 0)
        self._ids: list[int] = []
        for chunk_id in ids:
            self.add(chunk_id)

    @property
    def set_type(self) -> SetType:
        return self._type

    @property
    def size_hint(self) -> int:
        """Expected number of IDs, 0 if unknown."""
        return self._size_hint

    def add(self, chunk_id: int) -> bool:
        """Insert ``chunk_id``; return False if it was already present."""
        if self._type is SetType.BITMAP:
            pos = bisect_left(self._ids, chunk_id)
            if pos < len(self._ids) and self._ids[pos] == chunk_id:
                return False
            self._ids.insert(pos, chunk_id)
            return True
        if chunk_id in self._ids:
            return False
        self._ids.append(chunk_id)
        return True

    def check(self, chunk_id: int) -> int | None:
        """Position (priority) of ``chunk_id``, or None if absent."""
        if self._type is SetType.BITMAP:
            pos = bisect_left(self._ids, chunk_id)
            if pos < len(self._ids) and self._ids[pos] == chunk_id:
                return pos
            return None
        try:
            return self._ids.index(chunk_id)
        except ValueError:
            return None

    def union(self, other: Iterable[int]) -> int:
        """Add every ID of ``other`` after the existing ones; return the new size."""
        for chunk_id in list(other):
            self.add(chunk_id)
        return len(self)

    def clear(self, size_hint: int = 0) -> None:
        """Remove every ID and record a new expected size."""
        self._ids.clear()
        self._size_hint = max(size_hint, 0)

    def earliest(self) -> int | None:
        """The smallest ID, compared as unsigned 32-bit; None if empty."""
        if not self._ids:
            return None
        return min(self._ids, key=_unsigned)

    def latest(self) -> int | None:
        """The largest ID, compared as unsigned 32-bit; None if empty."""
        if not self._ids:
            return None
        return max(self._ids, key=_unsigned)

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[int]:
        return iter(self._ids)

    def __getitem__(self, index: int) -> int:
        return self._ids[index]

    def __contains__(self, chunk_id: object) -> bool:
        return isinstance(chunk_id, int) and self.check(chunk_id) is not None

    def __repr__(self) -> str:
        return f"ChunkIDSet({self._type.label!r}, ids={self._ids!r})"