"""In-memory multi-version key/value store with snapshot reads.

A :class:`Database` owns named :class:`Collection` objects that share one
commit clock.  Writers obtain a :class:`TxnContext`, stage inserts and
removals under it, and make them visible to later snapshots with
:meth:`Collection.commit`.  A context always sees its own staged writes;
other contexts see only what was committed before their snapshot was taken.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from sortedcontainers import SortedDict

OFV_COLLECTION = "graph_ofv"
FVO_COLLECTION = "graph_fvo"

KeyLike = Union[bytes, bytearray, memoryview, str]


@dataclass(frozen=True)
class TxnContext:
    """Identity and read snapshot of one transaction.

    A ``txn_id`` of 0 marks a read-only context.
    """

    txn_id: int
    read_snapshot_id: int
    thread_id: int = 0

    @property
    def read_only(self) -> bool:
        return self.txn_id == 0


@dataclass
class TransactionBatch:
    """Statistics changes accumulated by a transaction until commit."""

    logical_item_count_delta: int = 0
    live_record_bytes_delta: int = 0


class _Clock:
    """Hands out transaction ids and orders commits."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self._next_txn = 1
        self.last_commit = 0

    def begin(self, thread_id: int) -> TxnContext:
        with self.lock:
            txn_id = self._next_txn
            self._next_txn += 1
            return TxnContext(txn_id, self.last_commit, thread_id)


def _to_key(key: KeyLike) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def _prefix_end(prefix: bytes) -> Optional[bytes]:
    """Smallest key greater than every key starting with ``prefix``."""
    trimmed = prefix.rstrip(b"\xff")
    if not trimmed:
        return None
    return trimmed[:-1] + bytes([trimmed[-1] + 1])


def _next_key(
    index: SortedDict, after: Optional[bytes], start: Optional[bytes], end: Optional[bytes]
) -> Optional[bytes]:
    if after is None:
        keys = index.irange(minimum=start, maximum=end, inclusive=(True, False))
    else:
        keys = index.irange(minimum=after, maximum=end, inclusive=(False, False))
    return next(iter(keys), None)


class Collection:
    """An ordered key/value collection with versioned records."""

    def __init__(self, name: str, clock: Optional[_Clock] = None) -> None:
        self.name = name
        self._clock = clock if clock is not None else _Clock()
        self._lock = threading.RLock()
        # key -> list of (commit sequence, value or None for a tombstone)
        self._versions: SortedDict = SortedDict()
        # txn id -> SortedDict of staged key -> value or None
        self._pending: dict[int, SortedDict] = {}
        self.item_count = 0
        self.live_record_bytes = 0

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    def begin(self, thread_id: int = 0) -> TxnContext:
        """Start a writable transaction reading the latest committed state."""
        return self._clock.begin(thread_id)

    def _read(self, ctx: TxnContext, key: bytes) -> Optional[bytes]:
        staged = self._pending.get(ctx.txn_id)
        if staged is not None and key in staged:
            return staged[key]
        for seq, value in reversed(self._versions.get(key, ())):
            if seq <= ctx.read_snapshot_id:
                return value
        return None

    def get(self, ctx: TxnContext, key: KeyLike) -> Optional[bytes]:
        """Return the value of ``key`` visible to ``ctx``, or None."""
        with self._lock:
            return self._read(ctx, _to_key(key))

    def seek(
        self,
        ctx: TxnContext,
        start: Optional[KeyLike] = None,
        end: Optional[KeyLike] = None,
    ) -> Iterator[tuple[bytes, bytes]]:
        """Yield visible ``(key, value)`` pairs with ``start <= key < end`` in order.

        A missing bound is open.  Writes made while iterating are tolerated:
        each step looks up the next key after the last one returned.
        """
        lo = None if start is None else _to_key(start)
        hi = None if end is None else _to_key(end)
        last: Optional[bytes] = None
        while True:
            with self._lock:
                candidates = [_next_key(self._versions, last, lo, hi)]
                staged = self._pending.get(ctx.txn_id)
                if staged is not None:
                    candidates.append(_next_key(staged, last, lo, hi))
                found = [k for k in candidates if k is not None]
                if not found:
                    return
                key = min(found)
                value = self._read(ctx, key)
            last = key
            if value is not None:
                yield key, value

    def seek_prefix(self, ctx: TxnContext, prefix: KeyLike) -> Iterator[tuple[bytes, bytes]]:
        """Yield visible pairs whose key starts with ``prefix``."""
        raw = _to_key(prefix)
        return self.seek(ctx, raw, _prefix_end(raw))

    def _stage(self, ctx: TxnContext, key: bytes, value: Optional[bytes]) -> None:
        if ctx.read_only:
            raise ValueError("cannot write through a read-only transaction context")
        self._pending.setdefault(ctx.txn_id, SortedDict())[key] = value

    def insert(
        self, ctx: TxnContext, batch: TransactionBatch, key: KeyLike, value: KeyLike
    ) -> None:
        """Stage ``key = value``, replacing any visible value."""
        raw_key = _to_key(key)
        raw_value = _to_key(value)
        with self._lock:
            old = self._read(ctx, raw_key)
            self._stage(ctx, raw_key, raw_value)
        if old is None:
            batch.logical_item_count_delta += 1
        else:
            batch.live_record_bytes_delta -= len(raw_key) + len(old)
        batch.live_record_bytes_delta += len(raw_key) + len(raw_value)

    def remove(self, ctx: TxnContext, batch: TransactionBatch, key: KeyLike) -> None:
        """Stage the removal of ``key``; removing an absent key is harmless."""
        raw_key = _to_key(key)
        with self._lock:
            old = self._read(ctx, raw_key)
            self._stage(ctx, raw_key, None)
        if old is not None:
            batch.logical_item_count_delta -= 1
            batch.live_record_bytes_delta -= len(raw_key) + len(old)

    def commit(self, ctx: TxnContext, batch: TransactionBatch) -> None:
        """Publish the writes staged under ``ctx`` and apply the batch statistics."""
        with self._clock.lock:
            with self._lock:
                staged = self._pending.pop(ctx.txn_id, None)
                if staged:
                    seq = self._clock.last_commit + 1
                    for key, value in staged.items():
                        self._versions.setdefault(key, []).append((seq, value))
                    self._clock.last_commit = seq
                self.item_count += batch.logical_item_count_delta
                self.live_record_bytes += batch.live_record_bytes_delta
        batch.logical_item_count_delta = 0
        batch.live_record_bytes_delta = 0

    def abort(self, ctx: TxnContext) -> None:
        """Discard the writes staged under ``ctx``."""
        with self._lock:
            self._pending.pop(ctx.txn_id, None)


class Database:
    """A set of named collections sharing one commit clock."""

    def __init__(self) -> None:
        self._clock = _Clock()
        self._lock = threading.Lock()
        self._collections: dict[str, Collection] = {}
        self._next_object_id = 1

    def collection(self, name: str) -> Collection:
        """Return the collection called ``name``, creating it on first use."""
        with self._lock:
            found = self._collections.get(name)
            if found is None:
                found = Collection(name, self._clock)
                self._collections[name] = found
            return found

    @property
    def collection_names(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def begin_context(self, thread_id: int = 0) -> TxnContext:
        """Start a writable transaction valid across all collections."""
        return self._clock.begin(thread_id)

    def next_object_id(self) -> int:
        """Allocate a fresh object id; ids start at 1 and never repeat."""
        with self._lock:
            obj_id = self._next_object_id
            self._next_object_id += 1
            return obj_id