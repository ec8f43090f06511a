import pytest

from staxgraph.encoding import (
    ValueType,
    decode_property_value,
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
    ofv_relationship_prefix,
)


def test_fnv_empty_is_offset_basis():
    assert hash_fnv1a_32("") == 2166136261


def test_fnv_known_value():
    assert hash_fnv1a_32("a") == 0xE40C292C


def test_fnv_str_and_bytes_agree():
    assert hash_fnv1a_32("hello") == hash_fnv1a_32(b"hello")


def test_fnv_fits_32_bits():
    for text in ["x", "a longer string", "ünïcödé", "0" * 100]:
        assert 0 <= hash_fnv1a_32(text) <= 0xFFFFFFFF


def test_encode_u32_big_endian():
    assert encode_u32(1) == b"\x00\x00\x00\x01"


@pytest.mark.parametrize("value", [0, 1, 255, 65536, 0xFFFFFFFF])
def test_u32_round_trip(value):
    encoded = encode_u32(value)
    assert len(encoded) == 4
    assert decode_u32(encoded) == value


@pytest.mark.parametrize("value", [0, 1, 2**32, 2**63, 2**64 - 1])
def test_u64_round_trip(value):
    encoded = encode_u64(value)
    assert len(encoded) == 8
    assert decode_u64(encoded) == value


def test_encoding_preserves_order():
    values = [5, 0, 300, 70000, 2**31, 1]
    assert sorted(values) == [decode_u64(k) for k in sorted(encode_u64(v) for v in values)]
    assert sorted(values) == [decode_u32(k) for k in sorted(encode_u32(v) for v in values)]


@pytest.mark.parametrize("bad", [-1, 2**32])
def test_encode_u32_out_of_range(bad):
    with pytest.raises(ValueError):
        encode_u32(bad)


def test_encode_u64_out_of_range():
    with pytest.raises(ValueError):
        encode_u64(2**64)


def test_decode_too_short():
    with pytest.raises(ValueError):
        decode_u32(b"\x00\x01")
    with pytest.raises(ValueError):
        decode_u64(b"\x00" * 7)


def test_ofv_property_key_layout():
    key = ofv_property_key(1, 2)
    assert key == encode_u32(1) + b"p" + encode_u32(2)
    assert len(key) == 9


def test_ofv_relationship_key_layout():
    key = ofv_relationship_key(3, 4, 5)
    assert key.startswith(ofv_relationship_prefix(3, 4))
    assert key[4:5] == b"r"
    assert len(key) == 13
    assert decode_u32(key[9:]) == 5


def test_fvo_keys_layout():
    key = fvo_key(7, 8, 9)
    assert len(key) == 12
    assert (decode_u32(key), decode_u32(key[4:]), decode_u32(key[8:])) == (7, 8, 9)
    nkey = fvo_numeric_key(7, 2**40, 9)
    assert len(nkey) == 16
    assert decode_u64(nkey[4:]) == 2**40
    assert decode_u32(nkey[12:]) == 9


def test_property_value_round_trip():
    payload = encode_u64(1234)
    data = encode_property_value(ValueType.NUMERIC, "age", payload)
    assert data[0] == ValueType.NUMERIC
    assert decode_property_value(data) == (ValueType.NUMERIC, "age", payload)


def test_property_value_string_payload_may_contain_nul():
    data = encode_property_value(ValueType.STRING, "name", b"a\0b")
    assert decode_property_value(data) == (ValueType.STRING, "name", b"a\0b")


def test_property_value_rejects_nul_in_name():
    with pytest.raises(ValueError):
        encode_property_value(ValueType.STRING, "na\0me", b"x")


@pytest.mark.parametrize(
    "data",
    [b"", bytes([ValueType.STRING]), bytes([ValueType.STRING]) + b"name", b"?name\0x"],
)
def test_decode_property_value_errors(data):
    with pytest.raises(ValueError):
        decode_property_value(data)