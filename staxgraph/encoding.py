"""Binary key and value layouts used by the graph store.

Two indexes are kept:

* OFV (object, field, value): keyed by object id; holds properties
  (``obj | 'p' | field``) and relationships (``obj | 'r' | field | target``).
* FVO (field, value, object): the reverse index, keyed by field and value
  id (or a 64-bit numeric value) followed by the object id.

All integers are stored big-endian so that byte order equals numeric order.
"""

from __future__ import annotations

import struct
from enum import IntEnum

OFV_PROPERTY_PREFIX = b"p"
OFV_RELATIONSHIP_PREFIX = b"r"

U32_SIZE = 4
U64_SIZE = 8

_FNV_OFFSET_BASIS = 2166136261
_FNV_PRIME = 16777619
_U32_MASK = 0xFFFFFFFF

_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")


class ValueType(IntEnum):
    """Type code stored as the first byte of an OFV value."""

    STRING = ord("S")
    NUMERIC = ord("N")
    GEO = ord("G")
    RELATIONSHIP = ord("R")


def _as_bytes(data: str | bytes) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def hash_fnv1a_32(data: str | bytes) -> int:
    """Return the 32-bit FNV-1a hash of ``data`` (strings are UTF-8 encoded)."""
    value = _FNV_OFFSET_BASIS
    for byte in _as_bytes(data):
        value ^= byte
        value = (value * _FNV_PRIME) & _U32_MASK
    return value


def encode_u32(value: int) -> bytes:
    """Encode an unsigned 32-bit integer as 4 big-endian bytes."""
    if not 0 <= value <= _U32_MASK:
        raise ValueError(f"value out of range for u32: {value}")
    return _U32.pack(value)


def encode_u64(value: int) -> bytes:
    """Encode an unsigned 64-bit integer as 8 big-endian bytes."""
    if not 0 <= value <= 0xFFFFFFFFFFFFFFFF:
        raise ValueError(f"value out of range for u64: {value}")
    return _U64.pack(value)


def decode_u32(data: bytes) -> int:
    """Decode the first 4 bytes of ``data`` as a big-endian u32."""
    if len(data) < U32_SIZE:
        raise ValueError(f"need {U32_SIZE} bytes for u32, got {len(data)}")
    return _U32.unpack_from(data)[0]


def decode_u64(data: bytes) -> int:
    """Decode the first 8 bytes of ``data`` as a big-endian u64."""
    if len(data) < U64_SIZE:
        raise ValueError(f"need {U64_SIZE} bytes for u64, got {len(data)}")
    return _U64.unpack_from(data)[0]


def ofv_property_key(obj_id: int, field_id: int) -> bytes:
    """Key of a property record in the OFV index."""
    return encode_u32(obj_id) + OFV_PROPERTY_PREFIX + encode_u32(field_id)


def ofv_relationship_prefix(obj_id: int, field_id: int) -> bytes:
    """Prefix shared by all relationships of one type leaving ``obj_id``."""
    return encode_u32(obj_id) + OFV_RELATIONSHIP_PREFIX + encode_u32(field_id)


def ofv_relationship_key(obj_id: int, field_id: int, target_id: int) -> bytes:
    """Key of a relationship record in the OFV index."""
    return ofv_relationship_prefix(obj_id, field_id) + encode_u32(target_id)


def fvo_key(field_id: int, value_id: int, obj_id: int) -> bytes:
    """Key of a string property or relationship in the FVO index."""
    return encode_u32(field_id) + encode_u32(value_id) + encode_u32(obj_id)


def fvo_numeric_key(field_id: int, numeric_val: int, obj_id: int) -> bytes:
    """Key of a numeric or geo property in the FVO index."""
    return encode_u32(field_id) + encode_u64(numeric_val) + encode_u32(obj_id)


def encode_property_value(
    value_type: ValueType, field_name: str | bytes, payload: bytes
) -> bytes:
    """Build an OFV property value: type code, field name, NUL, payload."""
    name = _as_bytes(field_name)
    if b"\0" in name:
        raise ValueError("field name must not contain a NUL byte")
    return bytes([ValueType(value_type)]) + name + b"\0" + bytes(payload)


def decode_property_value(data: bytes) -> tuple[ValueType, str, bytes]:
    """Split an OFV property value into ``(type, field_name, payload)``.

    Raises ValueError if the value is too short, lacks the NUL separator or
    carries an unknown type code.
    """
    data = bytes(data)
    if len(data) < 2:
        raise ValueError("property value too short")
    nul = data.find(b"\0", 1)
    if nul < 0:
        raise ValueError("property value has no field-name terminator")
    try:
        value_type = ValueType(data[0])
    except ValueError:
        raise ValueError(f"unknown value type code: {data[0]!r}") from None
    return value_type, data[1:nul].decode("utf-8"), data[nul + 1 :]