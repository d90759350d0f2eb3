"""
Feature License - Typed Features

A feature is a single named, typed value in a license. The value is kept
as raw bytes in the canonical binary layout of its type; typed accessors
convert on access.

Binary layout of a serialized feature (all integers 4-byte big-endian):

    [type][name length][value length][name][value]    variable-width types
    [type][name length][name][value]                  fixed-width types

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import base64
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable
from uuid import UUID

from . import multiline
from .errors import CorruptFormatError, ParseError
from .numeric import parse_byte, parse_int, parse_long, parse_short


VARIABLE_LENGTH = -1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Most specific first
DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H",
    "%Y-%m-%d",
)

_INT = struct.Struct(">i")
_HEADER = struct.Struct(">ii")

# Separators of the text form, not allowed in feature names
NAME_SEPARATORS = ("=", ":", "\n", "\r")


class FeatureType(Enum):
    """Closed set of feature types: (serialized tag, fixed byte width)."""
    BINARY = (1, VARIABLE_LENGTH)
    STRING = (2, VARIABLE_LENGTH)
    BYTE = (3, 1)
    SHORT = (4, 2)
    INT = (5, 4)
    LONG = (6, 8)
    FLOAT = (7, 4)
    DOUBLE = (8, 8)
    BIGINTEGER = (9, VARIABLE_LENGTH)
    BIGDECIMAL = (10, VARIABLE_LENGTH)
    DATE = (11, 8)
    UUID = (12, 16)

    def __init__(self, tag: int, width: int):
        self.tag = tag
        self.width = width

    @property
    def is_variable_length(self) -> bool:
        return self.width == VARIABLE_LENGTH

    @classmethod
    def from_tag(cls, tag: int) -> "FeatureType":
        for feature_type in cls:
            if feature_type.tag == tag:
                return feature_type
        raise ValueError(f"Unknown feature type tag: {tag}")


# ---------------------------------------------------------------------------
# Per-type value conversions
# ---------------------------------------------------------------------------

def _require(value: Any, *types: type) -> None:
    if isinstance(value, bool) or not isinstance(value, types):
        names = " or ".join(t.__name__ for t in types)
        raise TypeError(f"Expected {names}, got {type(value).__name__}")


def _struct_packer(fmt: str, *types: type) -> Callable[[Any], bytes]:
    packer = struct.Struct(fmt)

    def pack(value: Any) -> bytes:
        _require(value, *types)
        try:
            return packer.pack(value)
        except (struct.error, OverflowError) as e:
            raise ValueError(f"Value {value!r} does not fit format {fmt}") from e

    return pack


def _struct_unpacker(fmt: str) -> Callable[[bytes], Any]:
    packer = struct.Struct(fmt)
    return lambda value: packer.unpack(value)[0]


def _pack_string(value: str) -> bytes:
    _require(value, str)
    return value.encode("utf-8")


def _pack_binary(value: bytes) -> bytes:
    _require(value, bytes, bytearray, memoryview)
    return bytes(value)


def _big_integer_bytes(value: int) -> bytes:
    """Minimal big-endian two's-complement representation, at least 1 byte."""
    magnitude = value if value >= 0 else ~value
    return value.to_bytes(magnitude.bit_length() // 8 + 1, "big", signed=True)


def _pack_big_integer(value: int) -> bytes:
    _require(value, int)
    return _big_integer_bytes(value)


def _unpack_big_integer(value: bytes) -> int:
    return int.from_bytes(value, "big", signed=True)


def _pack_big_decimal(value: Decimal) -> bytes:
    _require(value, Decimal, int)
    value = Decimal(value)
    if not value.is_finite():
        raise ValueError(f"BIGDECIMAL value has to be finite, got {value}")
    sign, digits, exponent = value.as_tuple()
    unscaled = int("".join(map(str, digits)) or "0")
    if sign:
        unscaled = -unscaled
    try:
        scale = _INT.pack(-exponent)
    except struct.error as e:
        raise ValueError(f"BIGDECIMAL scale {-exponent} does not fit 32 bits") from e
    return _big_integer_bytes(unscaled) + scale


def _unpack_big_decimal(value: bytes) -> Decimal:
    unscaled = _unpack_big_integer(value[:-_INT.size])
    (scale,) = _INT.unpack(value[-_INT.size:])
    digits = tuple(int(c) for c in str(abs(unscaled)))
    return Decimal((1 if unscaled < 0 else 0, digits, -scale))


def _parse_big_decimal(text: str) -> Decimal:
    value = Decimal(text.strip())
    if not value.is_finite():
        raise ValueError(f"BIGDECIMAL value has to be finite, got {text!r}")
    return value


def _epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


# Range of epoch milliseconds a datetime can hold
DATE_MIN_MILLIS = _epoch_millis(datetime.min)
DATE_MAX_MILLIS = _epoch_millis(datetime.max)


def _pack_date(value: datetime) -> bytes:
    _require(value, datetime)
    return struct.pack(">q", _epoch_millis(value))


def _unpack_date(value: bytes) -> datetime:
    (millis,) = struct.unpack(">q", value)
    if not DATE_MIN_MILLIS <= millis <= DATE_MAX_MILLIS:
        raise ValueError(f"DATE value {millis} ms is outside the supported date range")
    return EPOCH + timedelta(milliseconds=millis)


def _format_date(value: datetime) -> str:
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d} "
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}."
        f"{value.microsecond // 1000:03d}"
    )


def _parse_date(text: str) -> datetime:
    trimmed = text.strip()
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(trimmed, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Cannot parse date {text!r}")


def _pack_uuid(value: UUID) -> bytes:
    _require(value, UUID)
    # least significant long first
    return value.bytes[8:] + value.bytes[:8]


def _unpack_uuid(value: bytes) -> UUID:
    return UUID(bytes=value[8:] + value[:8])


def _format_float(value: float) -> str:
    """Shortest text that reads back as the same single precision value."""
    for precision in range(1, 10):
        text = f"{value:.{precision}g}"
        if struct.unpack(">f", struct.pack(">f", float(text)))[0] == value:
            return text
    return repr(value)


def _parse_binary(text: str) -> bytes:
    return base64.b64decode(text.strip(), validate=True)


@dataclass(frozen=True)
class _Codec:
    pack: Callable[[Any], bytes]
    unpack: Callable[[bytes], Any]
    format: Callable[[Any], str]
    parse: Callable[[str], Any]
    min_width: int = 0


_CODECS: dict[FeatureType, _Codec] = {
    FeatureType.BINARY: _Codec(
        _pack_binary, bytes,
        lambda v: base64.b64encode(v).decode("ascii"), _parse_binary),
    FeatureType.STRING: _Codec(
        _pack_string, lambda v: v.decode("utf-8"), str, str),
    FeatureType.BYTE: _Codec(
        _struct_packer(">b", int), _struct_unpacker(">b"),
        lambda v: f"0x{v & 0xFF:02X}", parse_byte),
    FeatureType.SHORT: _Codec(
        _struct_packer(">h", int), _struct_unpacker(">h"), str, parse_short),
    FeatureType.INT: _Codec(
        _struct_packer(">i", int), _struct_unpacker(">i"), str, parse_int),
    FeatureType.LONG: _Codec(
        _struct_packer(">q", int), _struct_unpacker(">q"), str, parse_long),
    FeatureType.FLOAT: _Codec(
        _struct_packer(">f", float, int), _struct_unpacker(">f"),
        _format_float, lambda t: float(t.strip())),
    FeatureType.DOUBLE: _Codec(
        _struct_packer(">d", float, int), _struct_unpacker(">d"),
        repr, lambda t: float(t.strip())),
    FeatureType.BIGINTEGER: _Codec(
        _pack_big_integer, _unpack_big_integer, str,
        lambda t: int(t.strip(), 10), min_width=1),
    FeatureType.BIGDECIMAL: _Codec(
        _pack_big_decimal, _unpack_big_decimal, str, _parse_big_decimal,
        min_width=_INT.size + 1),
    FeatureType.DATE: _Codec(
        _pack_date, _unpack_date, _format_date, _parse_date),
    FeatureType.UUID: _Codec(
        _pack_uuid, _unpack_uuid, str, lambda t: UUID(t.strip())),
}


# ---------------------------------------------------------------------------
# Feature
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Feature:
    """
    Immutable (name, type, value) triple.

    Create instances with `Feature.create` or one of the typed factory
    functions of this module, never with raw bytes that were not produced
    by the codec of the type.
    """
    name: str
    type: FeatureType
    value: bytes

    def __post_init__(self):
        if self.name is None:
            raise ValueError("Feature name cannot be None.")
        if self.name != self.name.strip() or any(
            separator in self.name for separator in NAME_SEPARATORS
        ):
            raise ValueError(f"Feature name {self.name!r} cannot be written as text")
        object.__setattr__(self, "value", bytes(self.value))

        width = self.type.width
        length = len(self.value)
        if width != VARIABLE_LENGTH and length != width:
            raise ValueError(
                f"{self.type.name} feature needs {width} bytes, got {length}"
            )
        if length < _CODECS[self.type].min_width:
            raise ValueError(
                f"{self.type.name} feature needs at least "
                f"{_CODECS[self.type].min_width} bytes, got {length}"
            )
        if self.type in (FeatureType.STRING, FeatureType.DATE):
            self.value_object()

    @classmethod
    def create(cls, name: str, feature_type: FeatureType, value: Any) -> "Feature":
        """Factory method to create a feature from a Python value."""
        if value is None:
            raise ValueError("Cannot create a feature from None value.")
        return cls(name, feature_type, _CODECS[feature_type].pack(value))

    # Accessors

    def is_type(self, feature_type: FeatureType) -> bool:
        return self.type is feature_type

    def value_object(self) -> Any:
        """Return the value converted to the Python type of the feature."""
        return _CODECS[self.type].unpack(self.value)

    def _get(self, feature_type: FeatureType) -> Any:
        if self.type is not feature_type:
            raise ValueError(f"Feature is not {feature_type.name}")
        return self.value_object()

    def get_binary(self) -> bytes:
        return self._get(FeatureType.BINARY)

    def get_string(self) -> str:
        return self._get(FeatureType.STRING)

    def get_byte(self) -> int:
        return self._get(FeatureType.BYTE)

    def get_short(self) -> int:
        return self._get(FeatureType.SHORT)

    def get_int(self) -> int:
        return self._get(FeatureType.INT)

    def get_long(self) -> int:
        return self._get(FeatureType.LONG)

    def get_float(self) -> float:
        return self._get(FeatureType.FLOAT)

    def get_double(self) -> float:
        return self._get(FeatureType.DOUBLE)

    def get_big_integer(self) -> int:
        return self._get(FeatureType.BIGINTEGER)

    def get_big_decimal(self) -> Decimal:
        return self._get(FeatureType.BIGDECIMAL)

    def get_date(self) -> datetime:
        return self._get(FeatureType.DATE)

    def get_uuid(self) -> UUID:
        return self._get(FeatureType.UUID)

    # Binary form

    def serialized(self) -> bytes:
        """Serialize the feature to its binary form."""
        name_bytes = self.name.encode("utf-8")
        header = _HEADER.pack(self.type.tag, len(name_bytes))
        if self.type.is_variable_length:
            header += _INT.pack(len(self.value))
        return header + name_bytes + self.value

    @classmethod
    def from_bytes(cls, data: bytes) -> "Feature":
        """
        Deserialize a feature from its binary form.

        The whole buffer has to be consumed by the feature; missing or
        trailing bytes raise CorruptFormatError.
        """
        data = bytes(data)
        if len(data) < _HEADER.size:
            raise CorruptFormatError(
                f"Feature binary has {len(data)} bytes, "
                f"needs at least {_HEADER.size}",
                offset=0,
            )
        tag, name_length = _HEADER.unpack_from(data, 0)
        try:
            feature_type = FeatureType.from_tag(tag)
        except ValueError:
            raise CorruptFormatError(
                f"Feature binary has invalid type tag {tag}", offset=0
            ) from None
        if name_length < 0:
            raise CorruptFormatError("Feature name length is negative", offset=4)

        offset = _HEADER.size
        if feature_type.is_variable_length:
            if len(data) < offset + _INT.size:
                raise CorruptFormatError(
                    "Feature binary ends before the value length", offset=offset
                )
            (value_length,) = _INT.unpack_from(data, offset)
            if value_length < 0:
                raise CorruptFormatError(
                    "Feature value length is negative", offset=offset
                )
            offset += _INT.size
        else:
            value_length = feature_type.width

        end = offset + name_length + value_length
        if len(data) < end:
            raise CorruptFormatError(
                f"Feature binary is {end - len(data)} bytes too short",
                offset=len(data),
            )
        if len(data) > end:
            raise CorruptFormatError(
                f"Feature binary is {len(data) - end} bytes too long",
                offset=end,
            )

        try:
            name = data[offset:offset + name_length].decode("utf-8")
        except UnicodeDecodeError:
            raise CorruptFormatError(
                "Feature name is not valid UTF-8", offset=offset
            ) from None
        try:
            return cls(name, feature_type, data[offset + name_length:end])
        except ValueError as e:
            raise CorruptFormatError(str(e), offset=offset + name_length) from e

    # Text form

    def value_string(self) -> str:
        """Return the text representation of the value."""
        return _CODECS[self.type].format(self.value_object())

    def __str__(self) -> str:
        type_part = "" if self.type is FeatureType.STRING else f":{self.type.name}"
        return f"{self.name}{type_part}={multiline.encode(self.value_string())}"

    @classmethod
    def from_string(cls, text: str) -> "Feature":
        """
        Create a feature from its `name[:TYPE]=value` text form.

        A value framed with the multi-line sentinel may span several lines.
        """
        lines = text.split("\n")
        name, type_name, value = split_line(lines[0].rstrip("\r"))
        if multiline.is_framed(value):
            value = multiline.decode(value, lines[1:])
        return parse_feature(name, type_name, value)


def split_line(line: str) -> tuple[str, str, str]:
    """
    Split a `name[:TYPE]=value` line into its parts.

    Whitespace around the name and the type is ignored. The type defaults
    to STRING. The value is returned verbatim.
    """
    eq = line.find("=")
    if eq < 0:
        raise ParseError("Feature line needs '=' after the name and type")
    colon = line.find(":", 0, eq)
    if colon >= 0:
        name = line[:colon].strip()
        type_name = line[colon + 1:eq].strip()
    else:
        name = line[:eq].strip()
        type_name = FeatureType.STRING.name
    return name, type_name, line[eq + 1:]


def parse_feature(name: str, type_name: str, value: str) -> Feature:
    """Create a feature from a type name and the text form of its value."""
    try:
        feature_type = FeatureType[type_name]
    except KeyError:
        raise ParseError(f"Unknown feature type {type_name!r}") from None
    try:
        parsed = _CODECS[feature_type].parse(value)
    except (ValueError, ArithmeticError) as e:
        raise ParseError(
            f"Cannot parse {value!r} as {feature_type.name} for feature {name!r}: {e}"
        ) from e
    return Feature.create(name, feature_type, parsed)


# ---------------------------------------------------------------------------
# Typed factories
# ---------------------------------------------------------------------------

def binary_feature(name: str, value: bytes) -> Feature:
    return Feature.create(name, FeatureType.BINARY, value)


def string_feature(name: str, value: str) -> Feature:
    return Feature.create(name, FeatureType.STRING, value)


def byte_feature(name: str, value: int) -> Feature:
    return Feature.create(name, FeatureType.BYTE, value)


def short_feature(name: str, value: int) -> Feature:
    return Feature.create(name, FeatureType.SHORT, value)


def int_feature(name: str, value: int) -> Feature:
    return Feature.create(name, FeatureType.INT, value)


def long_feature(name: str, value: int) -> Feature:
    return Feature.create(name, FeatureType.LONG, value)


def float_feature(name: str, value: float) -> Feature:
    return Feature.create(name, FeatureType.FLOAT, value)


def double_feature(name: str, value: float) -> Feature:
    return Feature.create(name, FeatureType.DOUBLE, value)


def big_integer_feature(name: str, value: int) -> Feature:
    return Feature.create(name, FeatureType.BIGINTEGER, value)


def big_decimal_feature(name: str, value: Decimal) -> Feature:
    return Feature.create(name, FeatureType.BIGDECIMAL, value)


def date_feature(name: str, value: datetime) -> Feature:
    return Feature.create(name, FeatureType.DATE, value)


def uuid_feature(name: str, value: UUID) -> Feature:
    return Feature.create(name, FeatureType.UUID, value)
