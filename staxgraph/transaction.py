"""Write transactions over the OFV and FVO graph indexes.

Inserts are buffered and written to the collections in batches.  Removals
go to the collections at once, after any buffered inserts, so operations
keep their order.  Nothing becomes visible to other readers until
:meth:`GraphTransaction.commit`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from .encoding import (
    U32_SIZE,
    U64_SIZE,
    OFV_PROPERTY_PREFIX,
    OFV_RELATIONSHIP_PREFIX,
    ValueType,
    decode_u32,
    decode_u64,
    encode_property_value,
    encode_u32,
    encode_u64,
    fvo_key,
    fvo_numeric_key,
    hash_fnv1a_32,
    ofv_property_key,
    ofv_relationship_key,
)
from .reader import GraphReader
from .store import (
    FVO_COLLECTION,
    OFV_COLLECTION,
    Database,
    TransactionBatch,
    TxnContext,
)

FVO_PLACEHOLDER_VALUE = b"1"

_OFV_RELATIONSHIP_KEY_LEN = U32_SIZE + 1 + U32_SIZE * 2
_OFV_PROPERTY_KEY_LEN = U32_SIZE + 1 + U32_SIZE
_FVO_KEY_LEN = U32_SIZE * 3

DEFAULT_FLUSH_THRESHOLD = 4096
DEFAULT_MAX_BATCH_BYTES = 1 << 20


class PropertyType(Enum):
    """Kind of value an object property holds."""

    STRING = "string"
    NUMERIC = "numeric"


@dataclass(frozen=True)
class ObjectProperty:
    """One named property of an object."""

    field: str
    type: PropertyType
    value: Union[str, int]

    @classmethod
    def string(cls, field: str, value: str) -> "ObjectProperty":
        return cls(field, PropertyType.STRING, value)

    @classmethod
    def numeric(cls, field: str, value: int) -> "ObjectProperty":
        return cls(field, PropertyType.NUMERIC, value)


class TransactionFinishedError(RuntimeError):
    """Raised when a committed or aborted transaction is written to."""


def _payload_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class GraphTransaction:
    """A batch of graph facts written atomically to both indexes."""

    def __init__(
        self,
        db: Database,
        thread_id: int = 0,
        read_snapshot_id: Optional[int] = None,
        commit_id: Optional[int] = None,
        *,
        flush_threshold: int = DEFAULT_FLUSH_THRESHOLD,
        max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
    ) -> None:
        if (read_snapshot_id is None) != (commit_id is None):
            raise ValueError("read_snapshot_id and commit_id must be given together")
        if flush_threshold < 1 or max_batch_bytes < 1:
            raise ValueError("batch limits must be positive")
        self.db = db
        self.thread_id = thread_id
        if commit_id is None:
            self.ctx = db.begin_context(thread_id)
        else:
            self.ctx = TxnContext(commit_id, read_snapshot_id, thread_id)
        self.ofv = db.collection(OFV_COLLECTION)
        self.fvo = db.collection(FVO_COLLECTION)
        self.flush_threshold = flush_threshold
        self.max_batch_bytes = max_batch_bytes
        self._ofv_batch = TransactionBatch()
        self._fvo_batch = TransactionBatch()
        self._ofv_pending: list[tuple[bytes, bytes]] = []
        self._fvo_pending: list[tuple[bytes, bytes]] = []
        self._ofv_bytes = 0
        self._fvo_bytes = 0
        self._seen_fields: set[int] = set()
        self.finished = False
        self.has_writes = False

    def __enter__(self) -> "GraphTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.abort()

    @property
    def txn_id(self) -> int:
        return self.ctx.txn_id

    @property
    def read_snapshot_id(self) -> int:
        return self.ctx.read_snapshot_id

    @property
    def pending_count(self) -> int:
        """Number of buffered inserts not yet written to the collections."""
        return len(self._ofv_pending) + len(self._fvo_pending)

    @property
    def seen_relationship_field_ids(self) -> frozenset[int]:
        return frozenset(self._seen_fields)

    def _check_open(self) -> None:
        if self.finished:
            raise TransactionFinishedError("GraphTransaction: Transaction already finished.")

    def _read_context(self) -> TxnContext:
        return TxnContext(0, self.ctx.read_snapshot_id, self.thread_id)

    def _stage(self, ofv_entry: tuple[bytes, bytes], fvo_entry: tuple[bytes, bytes]) -> None:
        if (
            len(self._ofv_pending) >= self.flush_threshold
            or len(self._fvo_pending) >= self.flush_threshold
        ):
            self.flush()
        ofv_size = len(ofv_entry[0]) + len(ofv_entry[1])
        if self._ofv_bytes + ofv_size > self.max_batch_bytes:
            self.flush()
        self._ofv_pending.append(ofv_entry)
        self._ofv_bytes += ofv_size
        fvo_size = len(fvo_entry[0])
        if self._fvo_bytes + fvo_size > self.max_batch_bytes:
            self.flush()
        self._fvo_pending.append(fvo_entry)
        self._fvo_bytes += fvo_size
        self.has_writes = True

    def insert_fact(self, obj_id: int, field_id: int, val_id: int) -> None:
        """Add a relationship ``obj_id -field_id-> val_id``."""
        self._check_open()
        self._seen_fields.add(field_id)
        self._stage(
            (ofv_relationship_key(obj_id, field_id, val_id), bytes([ValueType.RELATIONSHIP])),
            (fvo_key(field_id, val_id, obj_id), FVO_PLACEHOLDER_VALUE),
        )

    def insert_fact_string(
        self, obj_id: int, field_id: int, field_name: str, value: Union[str, bytes]
    ) -> None:
        """Set the string property ``field_id`` of ``obj_id``."""
        self._check_open()
        payload = _payload_bytes(value)
        self._stage(
            (
                ofv_property_key(obj_id, field_id),
                encode_property_value(ValueType.STRING, field_name, payload),
            ),
            (fvo_key(field_id, hash_fnv1a_32(payload), obj_id), FVO_PLACEHOLDER_VALUE),
        )

    def insert_fact_numeric(
        self, obj_id: int, field_id: int, field_name: str, value: int
    ) -> None:
        """Set the unsigned 64-bit numeric property ``field_id`` of ``obj_id``."""
        self._check_open()
        self._stage(
            (
                ofv_property_key(obj_id, field_id),
                encode_property_value(ValueType.NUMERIC, field_name, encode_u64(value)),
            ),
            (fvo_numeric_key(field_id, value, obj_id), FVO_PLACEHOLDER_VALUE),
        )

    def _remove(self, ofv_key: bytes, fvo_entry_key: bytes) -> None:
        if self._ofv_pending or self._fvo_pending:
            self.flush()
        self.ofv.remove(self.ctx, self._ofv_batch, ofv_key)
        self.fvo.remove(self.ctx, self._fvo_batch, fvo_entry_key)
        self.has_writes = True

    def remove_fact(self, obj_id: int, field_id: int, val_id: int) -> None:
        """Remove the relationship ``obj_id -field_id-> val_id``."""
        self._check_open()
        self._remove(
            ofv_relationship_key(obj_id, field_id, val_id),
            fvo_key(field_id, val_id, obj_id),
        )

    def remove_fact_string(
        self, obj_id: int, field_id: int, value: Union[str, bytes]
    ) -> None:
        """Remove the string property ``field_id`` holding ``value``."""
        self._check_open()
        self._remove(
            ofv_property_key(obj_id, field_id),
            fvo_key(field_id, hash_fnv1a_32(_payload_bytes(value)), obj_id),
        )

    def remove_fact_numeric(self, obj_id: int, field_id: int, value: int) -> None:
        """Remove the numeric (or geo) property ``field_id`` holding ``value``."""
        self._check_open()
        self._remove(
            ofv_property_key(obj_id, field_id),
            fvo_numeric_key(field_id, value, obj_id),
        )

    def update_object(self, obj_id: int, properties: Iterable[ObjectProperty]) -> None:
        """Replace every property of ``obj_id``; relationships are kept."""
        self._check_open()
        self.clear_object_properties(obj_id)
        for prop in properties:
            field_id = hash_fnv1a_32(prop.field)
            if prop.type is PropertyType.STRING:
                self.insert_fact_string(obj_id, field_id, prop.field, prop.value)
            elif prop.type is PropertyType.NUMERIC:
                self.insert_fact_numeric(obj_id, field_id, prop.field, prop.value)
            else:
                raise ValueError(f"unsupported property type: {prop.type!r}")
        self.has_writes = True

    def _committed_ofv_entries(self, obj_id: int) -> list[tuple[bytes, bytes]]:
        return list(self.ofv.seek_prefix(self._read_context(), encode_u32(obj_id)))

    def clear_object_properties(self, obj_id: int) -> None:
        """Remove the committed properties of ``obj_id``, leaving relationships."""
        self._check_open()
        for key, value in self._committed_ofv_entries(obj_id):
            if len(key) != _OFV_PROPERTY_KEY_LEN:
                continue
            if key[U32_SIZE : U32_SIZE + 1] != OFV_PROPERTY_PREFIX:
                continue
            if len(value) < 2:
                continue
            nul = value.find(b"\0", 1)
            if nul < 0:
                continue
            field_id = decode_u32(key[U32_SIZE + 1 :])
            code, payload = value[0], value[nul + 1 :]
            if code == ValueType.STRING:
                self.remove_fact_string(obj_id, field_id, payload)
            elif code in (ValueType.NUMERIC, ValueType.GEO) and len(payload) >= U64_SIZE:
                self.remove_fact_numeric(obj_id, field_id, decode_u64(payload))
        self.has_writes = True

    def clear_object_facts(self, obj_id: int) -> None:
        """Remove the properties and the outgoing and incoming relationships of ``obj_id``."""
        self._check_open()
        self.clear_object_properties(obj_id)

        for key, _ in self._committed_ofv_entries(obj_id):
            if len(key) != _OFV_RELATIONSHIP_KEY_LEN:
                continue
            if key[U32_SIZE : U32_SIZE + 1] != OFV_RELATIONSHIP_PREFIX:
                continue
            field_id = decode_u32(key[U32_SIZE + 1 : U32_SIZE + 1 + U32_SIZE])
            target_id = decode_u32(key[U32_SIZE + 1 + U32_SIZE :])
            self.remove_fact(obj_id, field_id, target_id)

        read_ctx = self._read_context()
        reader = GraphReader(self.db, read_ctx)
        for field_id in sorted(reader.get_all_relationship_types()):
            prefix = encode_u32(field_id) + encode_u32(obj_id)
            sources = [
                decode_u32(key[U32_SIZE * 2 :])
                for key, _ in self.fvo.seek_prefix(read_ctx, prefix)
                if len(key) == _FVO_KEY_LEN
            ]
            for source_id in sources:
                self.remove_fact(source_id, field_id, obj_id)
        self.has_writes = True

    def flush(self) -> None:
        """Write buffered inserts to the collections under this transaction."""
        for key, value in self._ofv_pending:
            self.ofv.insert(self.ctx, self._ofv_batch, key, value)
        for key, value in self._fvo_pending:
            self.fvo.insert(self.ctx, self._fvo_batch, key, value)
        self._ofv_pending.clear()
        self._fvo_pending.clear()
        self._ofv_bytes = 0
        self._fvo_bytes = 0

    def commit(self) -> None:
        """Publish every write; does nothing if already finished."""
        if self.finished:
            return
        self.flush()
        self.ofv.commit(self.ctx, self._ofv_batch)
        self.fvo.commit(self.ctx, self._fvo_batch)
        self.finished = True

    def abort(self) -> None:
        """Discard every write; does nothing if already finished."""
        if self.finished:
            return
        self._ofv_pending.clear()
        self._fvo_pending.clear()
        self._ofv_bytes = 0
        self._fvo_bytes = 0
        self.ofv.abort(self.ctx)
        self.fvo.abort(self.ctx)
        self.finished = True