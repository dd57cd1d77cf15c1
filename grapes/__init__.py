"""Building blocks for peer-to-peer streaming: chunk buffers, chunk ID sets, chunk and signaling messages, and gossip peer caches."""

__version__ = "0.1.0"