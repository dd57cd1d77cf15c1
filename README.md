# grapes

Building blocks for peer-to-peer streaming applications. The package provides
the data structures and message formats a streaming peer works with:

- a buffer that stores chunks,
- sets of chunk IDs that describe which chunks a peer has or wants,
- the encoding of chunk, signaling and gossip messages,
- the peer caches used by gossip-based peer sampling.

Your application decides when to send what. It also supplies the network
underneath.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

The package has no dependencies outside the standard library.

## Modules

### `grapes.net`

- `NodeID(ip, port)`: a frozen, ordered peer address.
  - `dump()` serialises it as a length byte, the ASCII address and a big-endian port.
  - `NodeID.undump(data)` returns `(node, bytes_used)`.
  - `addr()` gives `"ip:port"`.
- `Transport`: an abstract base class with one method, `send(src, dst, data)`, which returns the number of bytes sent.
- `MemoryTransport`: a transport that records every message in `sent`, as `SentMessage(src, dst, data)` tuples. `messages_to(dst)` lists the payloads sent to one node.

### `grapes.msgtypes`

- `MessageType` holds the first byte of a message: `TOPOLOGY`, `CHUNK`, `SIGNALLING`, `TMAN`, `SECURED_DATA_CHUNK` and `SECURED_DATA_LOGIN`.
- `TopoMessage` holds the second byte of a gossip message, such as `NCAST_QUERY` or `CYCLON_REPLY`.

### `grapes.chunkbuffer`

- `Chunk(id, data, timestamp, attributes)`: one piece of a stream.
- `ChunkBuffer(size)` holds at most `size` chunks.
  - `add(chunk)` stores a chunk. When the buffer is full it drops the chunk with the smallest ID. It raises `OldChunkError` if the new chunk is not newer than that chunk, and `DuplicateChunkError` if the ID is already stored. Both errors derive from `ChunkBufferError`.
  - `chunks()` returns the stored chunks in increasing ID order.
  - `get(chunk_id)` returns one chunk, or `None`.
  - `clear()` empties the buffer.

### `grapes.chunkidset`

- `ChunkIDSet(set_type, size_hint, ids)` is a set of chunk IDs of one of two kinds:
  - `SetType.PRIORITY` keeps IDs in insertion order, and an ID's position is its priority.
  - `SetType.BITMAP` keeps IDs sorted.
- Its methods:
  - `add(chunk_id)` returns `False` if the ID was already present.
  - `check(chunk_id)` returns the ID's position, or `None`.
  - `union(other)` adds the IDs of `other`.
  - `clear(size_hint)` removes every ID.
  - `earliest()` and `latest()` compare IDs as unsigned 32-bit values.
- `parse_set_type(name)` maps `"priority"` or `"bitmap"` to a `SetType`.

### `grapes.chunkid_codec`

- `encode_chunk_signaling(cset, meta)` encodes a set, or `None`, followed by opaque metadata. A priority set is sent as a list of IDs; a bitmap set is sent as a base ID plus a bitmap.
- `decode_chunk_signaling(data)` returns `(cset_or_None, meta)`. It raises `SignalingDecodeError` on malformed input.

### `grapes.chunk_codec`

- `encode_chunk(chunk)` writes a 20-byte big-endian header (ID, 64-bit timestamp, payload size, attributes size), then the payload, then the attributes.
- `decode_chunk(data)` reverses it. It raises `ChunkDecodeError` if the buffer is too short.

### `grapes.chunk_delivery`

- `ChunkDelivery(local_id, transport)` sends chunk messages:
  - `send_chunk(to, chunk, transid)`
  - `send_secured_chunk(to, chunk, transid)`
  - `send_secured_chunk_login(to, chunk, transid)`
- `parse_chunk_message(data)` reads what follows the message type byte and returns `(chunk, transid)`.

### `grapes.signaling`

- `ChunkSignaling(local_id, transport)` sends signaling messages:
  - `request_chunks`, `deliver_chunks`, `offer_chunks` and `accept_chunks`
  - `send_buffer_map` and `request_buffer_map`; when the owner is `None`, it is the local node
  - `send_ack`
  - `request_secured_data_chunk` and `request_secured_data_login`
- `parse_signaling(data)` reads what follows the message type byte. It returns a `Signal` with `type` (a `SignalType`), `cset`, `max_deliver`, `trans_id` and `owner`. It raises `SignalingError` on bad input.

### `grapes.topocache`

`PeerCache(size, metadata_size, max_timestamp)` is a bounded cache of `CacheEntry(node, timestamp, meta)`. Entries are kept freshest first, and each carries fixed-size metadata.

- Adding and removing: `add`, `add_ranked`, `remove` and `update_metadata`.
- Ageing: `update()` adds one to every timestamp and drops entries that reach `max_timestamp`, when that is not 0.
- Random selection: `rand_peer`, `rand_cache` and `rand_cache_except`.
- Filling from another cache: `fill_random`, `fill_ordered` and `add_cache`.
- Combining caches: `rank`, `union` and `merge`. `merge` returns `(cache, source_mask)`, where the mask is made of `FROM_LOCAL` and `FROM_REMOTE`.
- Other operations: `resize`, `check` and `describe`.
- Wire form: `header_dump`, `entry_dump` and `PeerCache.undump`.

Failures raise `CacheError`. The functions that pick at random accept an optional `rng` object with `random()` and `sample()`, such as a `random.Random` instance.

### `grapes.blist_cache`

`BlacklistCache` is a peer cache whose `BlacklistEntry` items carry flags.

- `rand_peer` marks the peer it picks as waiting for a reply. If it picks a peer that is still waiting, it moves that peer to the `blacklist`.
- `union` and `merge` keep blacklisted peers out. They never blacklist the sender, which is the first entry of the other cache.
- `update` and `update_timeout` age the entries; `update_timeout` also drops those that reach `max_timestamp`.

### `grapes.topo_proto`, `grapes.ncast_proto`, `grapes.cyclon_proto` and `grapes.blist_proto`

These modules build and send gossip messages. Each message consists of a protocol byte, a type byte and an optional header, followed by a dumped cache.

- `TopoProtocol` provides `reply`, `query_peer` and `update_metadata`.
- `NcastProtocol` provides `reply`, `query`, `query_peer` and `update_metadata`. Its `reply` sends an aged copy of the local cache.
- `CyclonProtocol` provides `reply`, `query` and `change_metadata`.
- `BlacklistProtocol` provides:
  - `ncast_reply`, `ncast_query` and `ncast_query_peer`
  - `tman_reply` and `tman_query_peer`
  - `update_metadata`

## Example

```python
from grapes.chunkbuffer import Chunk, ChunkBuffer
from grapes.chunkidset import ChunkIDSet
from grapes.net import MemoryTransport, NodeID
from grapes.signaling import ChunkSignaling, parse_signaling

buf = ChunkBuffer(size=4)
buf.add(Chunk(id=7, data=b"payload", timestamp=1000))
buf.add(Chunk(id=3, data=b"earlier", timestamp=900))
print([c.id for c in buf.chunks()])   # [3, 7]

ids = ChunkIDSet()
ids.add(5)
ids.add(2)
print(ids.earliest(), ids.latest())   # 2 5

me = NodeID("127.0.0.1", 6000)
peer = NodeID("127.0.0.1", 6001)
transport = MemoryTransport()
ChunkSignaling(me, transport).offer_chunks(peer, ids, 2, 1)

message = transport.sent[0].data
signal = parse_signaling(message[1:])  # skip the message type byte
print(signal.type.name, list(signal.cset), signal.max_deliver)  # OFFER [5, 2] 2
```

## What the package does not do

- It contains no network transport. Only the `Transport` interface and the in-memory `MemoryTransport` are provided, so sending over sockets is up to you.
- The gossip modules only build and send messages, and the caches only store and combine entries. The package contains no driver that:
  - receives topology messages,
  - dispatches them by type,
  - runs the periodic peer-sampling rounds.
- It has no chunk scheduler, no stream chunkiser or dechunkiser, and no command-line program.