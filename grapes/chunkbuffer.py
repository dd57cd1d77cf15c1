"""Chunks and the bounded buffer a peer stores them in."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


@dataclass
class Chunk:
    """A piece of a stream.

    ``id`` is a sequence number unique within the stream; ``timestamp`` is
    an unsigned 64-bit value; ``attributes`` holds scheduler-specific data.
    """

    id: int
    data: bytes = b""
    timestamp: int = 0
    attributes: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def attributes_size(self) -> int:
        return len(self.attributes)


class ChunkBufferError(Exception):
    """A chunk could not be stored."""


class OldChunkError(ChunkBufferError):
    """The chunk is older than everything in a full buffer."""


class DuplicateChunkError(ChunkBufferError):
    """A chunk with the same ID is already stored."""


class ChunkBuffer:
    """Holds at most ``size`` chunks, evicting the oldest when full."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"buffer size must be positive, not {size}")
        self._size = size
        self._chunks: dict[int, Chunk] = {}

    @property
    def size(self) -> int:
        """Capacity of the buffer."""
        return self._size

    def add(self, chunk: Chunk) -> None:
        """Store ``chunk``.

        When the buffer is full the chunk with the smallest ID is dropped to
        make room, provided it is older than ``chunk``; otherwise
        :class:`OldChunkError` is raised. A chunk whose ID is already
        present raises :class:`DuplicateChunkError`.
        """
        if chunk.id in self._chunks:
            raise DuplicateChunkError(f"chunk {chunk.id} already in buffer")
        if len(self._chunks) == self._size:
            oldest = min(self._chunks)
            if oldest >= chunk.id:
                raise OldChunkError(f"chunk {chunk.id} is too old")
            del self._chunks[oldest]
        self._chunks[chunk.id] = chunk

    def chunks(self) -> list[Chunk]:
        """The stored chunks in increasing ID order."""
        return [self._chunks[i] for i in sorted(self._chunks)]

    def get(self, chunk_id: int) -> Chunk | None:
        """The chunk with ``chunk_id``, or ``None`` if it is not stored."""
        return self._chunks.get(chunk_id)

    def clear(self) -> None:
        """Remove every chunk."""
        self._chunks.clear()

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._chunks

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self.chunks())