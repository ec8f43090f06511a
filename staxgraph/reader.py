"""Read-side queries over the OFV and FVO graph indexes."""

from __future__ import annotations

from typing import Iterable, Optional, Union

from .encoding import (
    U32_SIZE,
    U64_SIZE,
    OFV_PROPERTY_PREFIX,
    OFV_RELATIONSHIP_PREFIX,
    ValueType,
    decode_u32,
    decode_u64,
    encode_u32,
    encode_u64,
    hash_fnv1a_32,
    ofv_property_key,
    ofv_relationship_key,
    ofv_relationship_prefix,
)
from .store import FVO_COLLECTION, OFV_COLLECTION, Database, TxnContext

_U32_MASK = 0xFFFFFFFF

_OFV_PROPERTY_KEY_LEN = U32_SIZE + 1 + U32_SIZE
_OFV_RELATIONSHIP_KEY_LEN = U32_SIZE + 1 + U32_SIZE * 2
_FVO_KEY_LEN = U32_SIZE * 3
_FVO_NUMERIC_KEY_LEN = U32_SIZE + U64_SIZE + U32_SIZE

_NUMERIC_CODES = (ValueType.NUMERIC, ValueType.GEO)


def _split_value(data: bytes) -> Optional[tuple[int, bytes]]:
    """Return ``(type code, payload)`` of a property value, or None if malformed."""
    if len(data) < 2:
        return None
    nul = data.find(b"\0", 1)
    if nul < 0:
        return None
    return data[0], data[nul + 1 :]


class GraphReader:
    """Queries against one read snapshot of a graph database."""

    def __init__(self, db: Database, ctx: TxnContext) -> None:
        self.db = db
        self.ctx = ctx
        self.ofv = db.collection(OFV_COLLECTION)
        self.fvo = db.collection(FVO_COLLECTION)

    def get_properties_and_relationships(self, obj_id: int) -> list[tuple[int, int, int]]:
        """Return ``(obj_id, field_id, value_id)`` for every fact of ``obj_id``.

        String values are reported by their FNV-1a hash, numeric and geo
        values by their low 32 bits, relationships by their target id.
        """
        results: list[tuple[int, int, int]] = []
        for key, value in self.ofv.seek_prefix(self.ctx, encode_u32(obj_id)):
            if len(key) < _OFV_PROPERTY_KEY_LEN:
                continue
            kind = key[U32_SIZE : U32_SIZE + 1]
            if kind == OFV_PROPERTY_PREFIX:
                if len(key) != _OFV_PROPERTY_KEY_LEN:
                    continue
                parts = _split_value(value)
                if parts is None:
                    continue
                code, payload = parts
                field_id = decode_u32(key[U32_SIZE + 1 :])
                if code == ValueType.STRING:
                    value_id = hash_fnv1a_32(payload)
                elif code in _NUMERIC_CODES and len(payload) >= U64_SIZE:
                    value_id = decode_u64(payload) & _U32_MASK
                else:
                    continue
                results.append((obj_id, field_id, value_id))
            elif kind == OFV_RELATIONSHIP_PREFIX:
                if len(key) != _OFV_RELATIONSHIP_KEY_LEN:
                    continue
                field_id = decode_u32(key[U32_SIZE + 1 : U32_SIZE + 1 + U32_SIZE])
                target_id = decode_u32(key[U32_SIZE + 1 + U32_SIZE :])
                results.append((obj_id, field_id, target_id))
        return results

    def _property(self, obj_id: int, field_id: int) -> Optional[tuple[int, bytes]]:
        value = self.ofv.get(self.ctx, ofv_property_key(obj_id, field_id))
        if not value:
            return None
        return _split_value(value)

    def get_property_string(self, obj_id: int, field_id: int) -> Optional[str]:
        """Return the string property ``field_id`` of ``obj_id``, or None."""
        parts = self._property(obj_id, field_id)
        if parts is None or parts[0] != ValueType.STRING:
            return None
        return parts[1].decode("utf-8", errors="surrogateescape")

    def get_property_numeric(self, obj_id: int, field_id: int) -> Optional[int]:
        """Return the numeric or geo property ``field_id`` of ``obj_id``, or None."""
        parts = self._property(obj_id, field_id)
        if parts is None or parts[0] not in _NUMERIC_CODES:
            return None
        if len(parts[1]) < U64_SIZE:
            return None
        return decode_u64(parts[1])

    def get_all_relationship_types(self) -> set[int]:
        """Field ids of every 12-byte FVO key (relationships and string properties)."""
        return {
            decode_u32(key[:U32_SIZE])
            for key, _ in self.fvo.seek(self.ctx)
            if len(key) == _FVO_KEY_LEN
        }

    def _objects_by_value_id(self, field_id: int, value_id: int) -> set[int]:
        if value_id == 0:
            return set()
        prefix = encode_u32(field_id) + encode_u32(value_id)
        return {
            decode_u32(key[U32_SIZE * 2 :])
            for key, _ in self.fvo.seek_prefix(self.ctx, prefix)
            if len(key) == _FVO_KEY_LEN
        }

    def get_objects_by_property(
        self, field_id: int, value: Union[int, str, bytes]
    ) -> list[int]:
        """Ascending ids of objects whose ``field_id`` holds ``value``.

        ``value`` is either a value id or a string, which is hashed first.
        """
        if isinstance(value, (str, bytes, bytearray)):
            value_id = hash_fnv1a_32(bytes(value) if not isinstance(value, str) else value)
        else:
            value_id = value
        return sorted(self._objects_by_value_id(field_id, value_id))

    def get_objects_by_property_range(self, field_id: int, start: int, end: int) -> list[int]:
        """Ascending ids of objects whose numeric ``field_id`` lies in ``[start, end]``."""
        field = encode_u32(field_id)
        lo = field + encode_u64(start)
        hi = field + encode_u64(end) + b"\xff"
        return sorted(
            {
                decode_u32(key[U32_SIZE + U64_SIZE :])
                for key, _ in self.fvo.seek(self.ctx, lo, hi)
                if len(key) == _FVO_NUMERIC_KEY_LEN
            }
        )

    def count_objects_by_property(self, field_id: int, value_id: int) -> int:
        """Number of distinct objects whose ``field_id`` holds ``value_id``."""
        return len(self._objects_by_value_id(field_id, value_id))

    def count_relationships_by_type(self, field_id: int) -> int:
        """Number of FVO entries under ``field_id``."""
        return sum(1 for _ in self.fvo.seek_prefix(self.ctx, encode_u32(field_id)))

    def _outgoing(self, source_id: int, field_id: int) -> set[int]:
        prefix = ofv_relationship_prefix(source_id, field_id)
        targets = set()
        for key, _ in self.ofv.seek_prefix(self.ctx, prefix):
            if len(key) == _OFV_RELATIONSHIP_KEY_LEN:
                target = decode_u32(key[U32_SIZE + 1 + U32_SIZE :])
                if target != 0:
                    targets.add(target)
        return targets

    def get_outgoing_relationships(self, source_id: int, field_id: int) -> list[int]:
        """Ascending target ids of ``source_id``'s relationships of type ``field_id``."""
        return sorted(self._outgoing(source_id, field_id))

    def get_outgoing_for_many(self, source_ids: Iterable[int], field_id: int) -> list[int]:
        """Ascending union of the targets of every id in ``source_ids``."""
        targets: set[int] = set()
        for source_id in sorted(set(source_ids)):
            targets |= self._outgoing(source_id, field_id)
        return sorted(targets)

    def get_incoming_relationships(self, target_id: int, field_id: int) -> list[int]:
        """Ascending ids of objects with a ``field_id`` relationship to ``target_id``."""
        return self.get_incoming_for_many([target_id], field_id)

    def get_incoming_for_many(self, target_ids: Iterable[int], field_id: int) -> list[int]:
        """Ascending union of the sources pointing at any id in ``target_ids``."""
        field = encode_u32(field_id)
        sources: set[int] = set()
        for target_id in sorted(set(target_ids)):
            prefix = field + encode_u32(target_id)
            for key, _ in self.fvo.seek_prefix(self.ctx, prefix):
                if len(key) == _FVO_KEY_LEN:
                    sources.add(decode_u32(key[U32_SIZE * 2 :]))
        return sorted(sources)

    def has_relationship(self, source_id: int, field_id: int, target_id: int) -> bool:
        """Whether ``source_id`` has a ``field_id`` relationship to ``target_id``."""
        key = ofv_relationship_key(source_id, field_id, target_id)
        return self.ofv.get(self.ctx, key) is not None