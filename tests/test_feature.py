"""
Tests for typed features and their binary and text forms.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import struct
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from featurelicense.errors import CorruptFormatError, ParseError
from featurelicense.feature import (
    Feature,
    FeatureType,
    binary_feature,
    string_feature,
    byte_feature,
    short_feature,
    int_feature,
    long_feature,
    float_feature,
    double_feature,
    big_integer_feature,
    big_decimal_feature,
    date_feature,
    uuid_feature,
    split_line,
    DATE_MAX_MILLIS,
    DATE_MIN_MILLIS,
)


EXPIRY = datetime(2018, 12, 17, 12, 55, 19, 295000, tzinfo=timezone.utc)
SAMPLE_UUID = UUID("550e8400-e29b-41d4-a716-446655440000")

SAMPLES = {
    FeatureType.BINARY: binary_feature("bin", b"\x00\x01\xfe\xff"),
    FeatureType.STRING: string_feature("str", "Peter Verhas"),
    FeatureType.BYTE: byte_feature("byte", -1),
    FeatureType.SHORT: short_feature("short", -300),
    FeatureType.INT: int_feature("int", 123456),
    FeatureType.LONG: long_feature("long", -9876543210),
    FeatureType.FLOAT: float_feature("float", 0.1),
    FeatureType.DOUBLE: double_feature("double", 3.141592653589793),
    FeatureType.BIGINTEGER: big_integer_feature("bigint", 2 ** 100 + 1),
    FeatureType.BIGDECIMAL: big_decimal_feature("bigdec", Decimal("-12345.678")),
    FeatureType.DATE: date_feature("date", EXPIRY),
    FeatureType.UUID: uuid_feature("uuid", SAMPLE_UUID),
}

GETTERS = {
    FeatureType.BINARY: "get_binary",
    FeatureType.STRING: "get_string",
    FeatureType.BYTE: "get_byte",
    FeatureType.SHORT: "get_short",
    FeatureType.INT: "get_int",
    FeatureType.LONG: "get_long",
    FeatureType.FLOAT: "get_float",
    FeatureType.DOUBLE: "get_double",
    FeatureType.BIGINTEGER: "get_big_integer",
    FeatureType.BIGDECIMAL: "get_big_decimal",
    FeatureType.DATE: "get_date",
    FeatureType.UUID: "get_uuid",
}


class TestFeatureCreation:
    """Tests for the typed factories and accessors."""

    def test_accessors_return_values(self):
        """Test each accessor returns the value the feature was created with."""
        assert SAMPLES[FeatureType.BINARY].get_binary() == b"\x00\x01\xfe\xff"
        assert SAMPLES[FeatureType.STRING].get_string() == "Peter Verhas"
        assert SAMPLES[FeatureType.BYTE].get_byte() == -1
        assert SAMPLES[FeatureType.SHORT].get_short() == -300
        assert SAMPLES[FeatureType.INT].get_int() == 123456
        assert SAMPLES[FeatureType.LONG].get_long() == -9876543210
        assert SAMPLES[FeatureType.FLOAT].get_float() == pytest.approx(0.1)
        assert SAMPLES[FeatureType.DOUBLE].get_double() == 3.141592653589793
        assert SAMPLES[FeatureType.BIGINTEGER].get_big_integer() == 2 ** 100 + 1
        assert SAMPLES[FeatureType.BIGDECIMAL].get_big_decimal() == Decimal("-12345.678")
        assert SAMPLES[FeatureType.DATE].get_date() == EXPIRY
        assert SAMPLES[FeatureType.UUID].get_uuid() == SAMPLE_UUID

    def test_none_value_rejected(self):
        """Test a feature cannot be created from None."""
        with pytest.raises(ValueError):
            string_feature("owner", None)
        with pytest.raises(ValueError):
            Feature.create("owner", FeatureType.INT, None)

    def test_out_of_range_value_rejected(self):
        """Test a value that does not fit the type is rejected."""
        with pytest.raises(ValueError):
            byte_feature("b", 128)
        with pytest.raises(ValueError):
            int_feature("i", 2 ** 31)

    def test_wrong_python_type_rejected(self):
        """Test a value of the wrong Python type is rejected."""
        with pytest.raises(TypeError):
            int_feature("i", "5")
        with pytest.raises(TypeError):
            long_feature("l", True)

    def test_fixed_width_mismatch_rejected(self):
        """Test the value length has to match a fixed-width type."""
        with pytest.raises(ValueError):
            Feature("i", FeatureType.INT, b"\x00\x01")

    @pytest.mark.parametrize("name", ["a=b", "a:b", "a\nb", "a\rb", " a", "a "])
    def test_name_must_survive_text_form(self, name):
        """Test names holding text separators or surrounding blanks are rejected."""
        with pytest.raises(ValueError):
            string_feature(name, "value")

    def test_date_range_limits(self):
        """Test the first and last representable instants are accepted."""
        first = Feature(
            "d", FeatureType.DATE, struct.pack(">q", DATE_MIN_MILLIS)
        ).get_date()
        last = Feature(
            "d", FeatureType.DATE, struct.pack(">q", DATE_MAX_MILLIS)
        ).get_date()
        assert first == datetime.min.replace(tzinfo=timezone.utc)
        assert last == datetime(9999, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)

    @pytest.mark.parametrize("millis", [2 ** 63 - 1, -(2 ** 63)])
    def test_date_outside_range_rejected(self, millis):
        """Test epoch milliseconds no datetime can hold are rejected."""
        with pytest.raises(ValueError):
            Feature("d", FeatureType.DATE, struct.pack(">q", millis))

    def test_naive_date_is_utc(self):
        """Test a naive datetime is taken as UTC."""
        naive = datetime(2018, 12, 17, 12, 55, 19, 295000)
        assert date_feature("d", naive).value == SAMPLES[FeatureType.DATE].value

    def test_date_is_stored_as_epoch_millis(self):
        """Test the DATE layout is epoch milliseconds."""
        assert SAMPLES[FeatureType.DATE].value == struct.pack(">q", 1545051319295)

    def test_uuid_layout(self):
        """Test UUID is stored least significant long first."""
        value = SAMPLES[FeatureType.UUID].value
        assert value[:8] == SAMPLE_UUID.bytes[8:]
        assert value[8:] == SAMPLE_UUID.bytes[:8]

    def test_big_integer_layout(self):
        """Test minimal two's-complement representation."""
        assert big_integer_feature("n", 0).value == b"\x00"
        assert big_integer_feature("n", -1).value == b"\xff"
        assert big_integer_feature("n", 128).value == b"\x00\x80"
        assert big_integer_feature("n", -128).value == b"\x80"

    def test_big_decimal_layout(self):
        """Test BIGDECIMAL is unscaled value followed by the scale."""
        feature = big_decimal_feature("d", Decimal("123.45"))
        assert feature.value == b"\x30\x39" + struct.pack(">i", 2)

    def test_big_decimal_keeps_scale(self):
        """Test trailing zeros and exponents survive."""
        for text in ("1.500", "1E+3", "-0.0001"):
            value = big_decimal_feature("d", Decimal(text)).get_big_decimal()
            assert str(value) == text


class TestTypeSafety:
    """Tests that accessors refuse features of other types."""

    @pytest.mark.parametrize("actual", list(FeatureType))
    @pytest.mark.parametrize("requested", list(FeatureType))
    def test_wrong_accessor_raises(self, actual, requested):
        """Test every accessor except the matching one raises ValueError."""
        feature = SAMPLES[actual]
        getter = getattr(feature, GETTERS[requested])
        if actual is requested:
            getter()
        else:
            with pytest.raises(ValueError):
                getter()

    def test_is_type(self):
        """Test type checks."""
        assert SAMPLES[FeatureType.INT].is_type(FeatureType.INT)
        assert not SAMPLES[FeatureType.INT].is_type(FeatureType.LONG)


class TestBinaryForm:
    """Tests for the binary serialization of a feature."""

    def test_variable_length_layout(self):
        """Test variable-width types carry a value length."""
        serialized = string_feature("a", "bc").serialized()
        assert serialized == struct.pack(">iii", 2, 1, 2) + b"abc"

    def test_fixed_length_layout(self):
        """Test fixed-width types omit the value length."""
        serialized = int_feature("a", 1).serialized()
        assert serialized == struct.pack(">ii", 5, 1) + b"a" + b"\x00\x00\x00\x01"

    @pytest.mark.parametrize("feature_type", list(FeatureType))
    def test_roundtrip(self, feature_type):
        """Test from_bytes restores the feature."""
        feature = SAMPLES[feature_type]
        assert Feature.from_bytes(feature.serialized()) == feature

    def test_utf8_name(self):
        """Test non-ASCII names use UTF-8 length."""
        feature = string_feature("név", "érték")
        assert Feature.from_bytes(feature.serialized()) == feature

    def test_too_short(self):
        """Test input shorter than the header is rejected."""
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(b"\x00\x00\x00\x02")

    def test_unknown_tag(self):
        """Test an unknown type tag is rejected."""
        data = struct.pack(">iii", 99, 1, 1) + b"ab"
        with pytest.raises(CorruptFormatError) as exc:
            Feature.from_bytes(data)
        assert exc.value.offset == 0

    def test_truncated(self):
        """Test missing bytes are rejected."""
        data = string_feature("owner", "Peter").serialized()
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data[:-1])

    def test_trailing_bytes(self):
        """Test extra bytes are rejected."""
        data = int_feature("count", 5).serialized()
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data + b"\x00")

    def test_negative_length(self):
        """Test a negative value length is rejected."""
        data = struct.pack(">iii", 2, 1, -1) + b"a"
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data)

    def test_short_big_decimal_value(self):
        """Test a BIGDECIMAL value without room for the scale is rejected."""
        data = struct.pack(">iii", 10, 1, 2) + b"d" + b"\x00\x01"
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data)

    def test_invalid_utf8_string_value(self):
        """Test a STRING value has to be UTF-8."""
        data = struct.pack(">iii", 2, 1, 1) + b"s" + b"\xff"
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data)

    def test_date_outside_range(self):
        """Test a DATE value outside the datetime range is corrupt."""
        data = struct.pack(">ii", 11, 1) + b"d" + struct.pack(">q", 2 ** 63 - 1)
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data)

    def test_name_with_separator(self):
        """Test a name that cannot be written as text is corrupt."""
        data = struct.pack(">ii", 5, 3) + b"a=b" + struct.pack(">i", 1)
        with pytest.raises(CorruptFormatError):
            Feature.from_bytes(data)


class TestTextForm:
    """Tests for the name[:TYPE]=value text form."""

    def test_string_has_no_type(self):
        """Test STRING features omit the type."""
        assert str(string_feature("owner", "Peter Verhas")) == "owner=Peter Verhas"

    def test_typed_feature(self):
        """Test other types carry the type name."""
        assert str(int_feature("count", 5)) == "count:INT=5"
        assert str(date_feature("expiry", EXPIRY)) == "expiry:DATE=2018-12-17 12:55:19.295"

    def test_byte_is_hex(self):
        """Test BYTE values are written as unsigned hex."""
        assert byte_feature("b", -1).value_string() == "0xFF"
        assert byte_feature("b", 10).value_string() == "0x0A"

    def test_float_is_shortest(self):
        """Test FLOAT values are written without single precision noise."""
        assert float_feature("f", 0.1).value_string() == "0.1"

    def test_binary_is_base64(self):
        """Test BINARY values are base64."""
        assert binary_feature("b", b"abc").value_string() == "YWJj"

    @pytest.mark.parametrize("feature_type", list(FeatureType))
    def test_roundtrip(self, feature_type):
        """Test from_string restores the feature."""
        feature = SAMPLES[feature_type]
        assert Feature.from_string(str(feature)) == feature

    def test_multiline_roundtrip(self):
        """Test a framed STRING value restores."""
        feature = string_feature("title", "A license test, \ntest license")
        assert Feature.from_string(str(feature)) == feature

    def test_date_formats(self):
        """Test less specific date formats are accepted."""
        assert Feature.from_string("d:DATE=2018-12-17").get_date() == datetime(
            2018, 12, 17, tzinfo=timezone.utc
        )
        assert Feature.from_string("d:DATE=2018-12-17 12:55").get_date() == datetime(
            2018, 12, 17, 12, 55, tzinfo=timezone.utc
        )
        assert Feature.from_string("d:DATE=2018-12-17 12").get_date() == datetime(
            2018, 12, 17, 12, tzinfo=timezone.utc
        )

    def test_unsigned_literal(self):
        """Test integer literals use the unsigned folding."""
        assert Feature.from_string("b:BYTE=0xFF").get_byte() == -1
        assert Feature.from_string("s:SHORT=65535").get_short() == -1

    def test_whitespace_around_name_and_type(self):
        """Test whitespace around name and type is ignored."""
        feature = Feature.from_string("  count : INT = 7")
        assert feature.name == "count"
        assert feature.get_int() == 7

    def test_split_line(self):
        """Test splitting a line into name, type and value."""
        assert split_line("a=b:c") == ("a", "STRING", "b:c")
        assert split_line("a:INT=1=2") == ("a", "INT", "1=2")

    def test_missing_equals(self):
        """Test a line without '=' is rejected."""
        with pytest.raises(ParseError):
            Feature.from_string("owner Peter")

    def test_unknown_type(self):
        """Test an unknown type name is rejected."""
        with pytest.raises(ParseError):
            Feature.from_string("owner:NAME=Peter")

    def test_unparsable_value(self):
        """Test a value that does not parse as the type is rejected."""
        with pytest.raises(ParseError):
            Feature.from_string("count:INT=many")
        with pytest.raises(ParseError):
            Feature.from_string("b:BYTE=0x1FF")
        with pytest.raises(ParseError):
            Feature.from_string("d:DATE=yesterday")
        with pytest.raises(ParseError):
            Feature.from_string("bin:BINARY=not base64!")

    def test_last_date_roundtrip(self):
        """Test the last representable instant survives the text form."""
        feature = Feature("d", FeatureType.DATE, struct.pack(">q", DATE_MAX_MILLIS))
        assert str(feature) == "d:DATE=9999-12-31 23:59:59.999"
        assert Feature.from_string(str(feature)) == feature

    def test_carriage_return_is_framed(self):
        """Test STRING values with a carriage return are framed and kept."""
        for value in ("abc\r", "line1\r\nline2", "\r"):
            feature = string_feature("s", value)
            assert str(feature).startswith("s=<<")
            assert Feature.from_string(str(feature)).get_string() == value
