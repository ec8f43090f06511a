"""Sample user records with packed index payloads and flat document form."""

from __future__ import annotations

from dataclasses import dataclass

_U8 = 0xFF
_U16 = 0xFFFF
_U64 = 0xFFFFFFFFFFFFFFFF


def _parse_uint(text: str) -> int | None:
    if text and text.isascii() and text.isdigit():
        return int(text) & _U64
    return None


def spread_bits_16(value: int) -> int:
    """Spread the 16 bits of ``value`` to the even bit positions of a word."""
    if not 0 <= value <= _U16:
        raise ValueError(f"value out of range for 16 bits: {value}")
    x = value
    x = (x | (x << 16)) & 0x0000FFFF0000FFFF
    x = (x | (x << 8)) & 0x00FF00FF00FF00FF
    x = (x | (x << 4)) & 0x0F0F0F0F0F0F0F0F
    x = (x | (x << 2)) & 0x3333333333333333
    x = (x | (x << 1)) & 0x5555555555555555
    return x


def z_order_encode_3x16(val1: int, val2: int, val3: int) -> int:
    """Combine three 16-bit values into one Z-order payload."""
    return (spread_bits_16(val1) << 2) | (spread_bits_16(val2) << 1) | spread_bits_16(val3)


@dataclass
class TestUser:
    """A user record as stored by the document workloads."""

    __test__ = False

    user_id: int = 0
    age: int = 0
    country_id: int = 0
    tier: int = 0
    username: str = ""
    email: str = ""
    bio: str = ""
    registration_timestamp: int = 0

    def pack_fractal_payload(self) -> int:
        """Pack country, age and tier into the high bits of a 64-bit word."""
        payload = (self.country_id & _U16) << 48
        payload |= (self.age & _U8) << 40
        payload |= (self.tier & _U8) << 38
        return payload

    def serialize_flex_doc(self) -> str:
        """Render the record as ``key:value`` fields joined by ``|``."""
        return (
            f"id:{self.user_id}|name:{self.username}|email:{self.email}"
            f"|age:{self.age}|country:{self.country_id}|tier:{self.tier}"
            f"|bio:{self.bio}|reg_ts:{self.registration_timestamp}"
        )

    @classmethod
    def deserialize_flex_doc(cls, doc: str) -> "TestUser":
        """Parse a document written by :meth:`serialize_flex_doc`.

        Unknown keys and tokens without a colon are ignored; numeric fields
        that do not parse keep their default.
        """
        user = cls()
        for token in doc.split("|"):
            key, sep, val = token.partition(":")
            if not sep:
                continue
            number = _parse_uint(val)
            if key == "id":
                if number is not None:
                    user.user_id = number
            elif key == "name":
                user.username = val
            elif key == "email":
                user.email = val
            elif key == "age":
                user.age = (number or 0) & _U8
            elif key == "country":
                user.country_id = (number or 0) & _U16
            elif key == "tier":
                user.tier = (number or 0) & _U8
            elif key == "bio":
                user.bio = val
            elif key == "reg_ts":
                if number is not None:
                    user.registration_timestamp = number
        return user


@dataclass
class WideUser:
    """A record with many small fields, indexed by a Z-order payload."""

    user_id: int = 0
    f1_region: int = 0
    f2_category: int = 0
    f3_status: int = 0
    f4: int = 0
    f5: int = 0
    f6: int = 0
    f7: int = 0
    f8: int = 0
    f9: int = 0
    f10: int = 0
    f11: int = 0
    f12: int = 0
    f13: int = 0
    f14: int = 0
    f15: int = 0
    f16_notes: str = ""

    def pack_z_order_payload(self) -> int:
        """Z-order payload of region, category and status."""
        return z_order_encode_3x16(self.f1_region, self.f2_category, self.f3_status)

    def serialize_doc(self) -> str:
        """Short document holding the id and region."""
        return f"id:{self.user_id}|f1:{self.f1_region}"