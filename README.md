# staxgraph

`staxgraph` is a small transactional graph store that lives in memory. Facts about
objects are kept in two ordered key-value collections:

- **OFV** (object → field → value): each object's properties and its outgoing
  relationships.
- **FVO** (field → value → object): the reverse index. It answers "which objects
  have this value?" and "who points at this node?".

Keys are packed big-endian, so a prefix scan over a sorted collection returns
results in numeric order.

## Installation

```
pip install staxgraph
```

To install the test dependencies as well:

```
pip install "staxgraph[test]"
```

## Modules

| Module | Contents |
| --- | --- |
| `staxgraph.encoding` | `ValueType`, `hash_fnv1a_32`, `encode_u32`/`encode_u64`/`decode_u32`/`decode_u64`, the OFV/FVO key builders and `encode_property_value`/`decode_property_value` |
| `staxgraph.store` | `Database`, `Collection`, `TxnContext`, `TransactionBatch`: ordered multi-version collections with snapshot reads |
| `staxgraph.operators` | Iterator-style query operators: `IndexScanOperator`, `ForwardScanOperator`, `IntersectOperator`, `QueryPipeline` |
| `staxgraph.reader` | `GraphReader`, for property lookups, index lookups, numeric range scans and relationship traversal |
| `staxgraph.algorithms` | `find_shortest_path`, `count_triangles`, `common_neighbors` |
| `staxgraph.transaction` | `GraphTransaction`, `ObjectProperty`, `PropertyType`, `TransactionFinishedError` |
| `staxgraph.fractal` | `TestUser`, `WideUser`, `spread_bits_16`, `z_order_encode_3x16`: payload packing and flat `key:value|...` documents |

## Example

```python
from staxgraph.encoding import hash_fnv1a_32
from staxgraph.store import Database
from staxgraph.transaction import GraphTransaction
from staxgraph.reader import GraphReader
from staxgraph.algorithms import find_shortest_path

db = Database()
knows = hash_fnv1a_32("knows")
name = hash_fnv1a_32("name")

with GraphTransaction(db) as txn:
    txn.insert_fact_string(1, name, "name", "alice")
    txn.insert_fact_string(2, name, "name", "bob")
    txn.insert_fact(1, knows, 2)
    txn.insert_fact(2, knows, 3)

reader = GraphReader(db, db.begin_context(0))
reader.get_property_string(1, name)          # "alice"
reader.get_objects_by_property(name, "bob")  # [2]
reader.get_outgoing_relationships(1, knows)  # [2]
reader.get_incoming_relationships(2, knows)  # [1]
find_shortest_path(reader, 1, 3, knows)      # [1, 2, 3]
```

Used as a context manager, a `GraphTransaction` commits when the block ends
normally and aborts when it raises. A reader sees only what was committed before
its context was begun.

## Transactions

- `insert_fact`, `insert_fact_string` and `insert_fact_numeric` are buffered and
  written to the collections in batches (`flush`, or at `commit`).
- `remove_fact`, `remove_fact_string` and `remove_fact_numeric` take effect in
  the transaction at once, after any buffered inserts.
- `update_object(obj_id, properties)` replaces an object's committed properties
  with a list of `ObjectProperty` values (`ObjectProperty.string(...)`,
  `ObjectProperty.numeric(...)`) and leaves its relationships in place.
- `clear_object_facts(obj_id)` removes the object's properties, its outgoing
  relationships and every relationship that points at it.
- Calling a write method on a committed or aborted transaction raises
  `TransactionFinishedError`; calling `commit` or `abort` again does nothing.

## What this package does not do

- It keeps everything in memory: there is no storage on disk, no durability and
  no compaction.
- It has no server, network protocol or command-line program.
- Properties can be strings or unsigned 64-bit numbers. Geo values are
  recognised when read (`ValueType.GEO`), but there is no call to write one.

## Running the tests

```
pytest
```