"""
Unit tests for field parsers.

Includes property-based testing with hypothesis for the numeric parsers.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from retail_conform.core.parsers import (
    DateParser,
    DateTimeParser,
    DecimalParser,
    IdentifierParser,
    IntegerParser,
    StringParser,
    get_parser,
    parse,
    parse_datetime_text,
    to_date,
)


class TestBlankInput:
    """Tests for absent and blank values"""

    @pytest.mark.parametrize("target_type", ["identifier", "integer", "decimal", "date", "datetime"])
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_fails_for_typed_fields(self, target_type, raw):
        """Test blank input is a failed parse with no value"""
        assert parse(raw, target_type) == (None, False)

    @pytest.mark.parametrize("raw", [None, "", "  "])
    def test_blank_string_is_absent_not_failed(self, raw):
        """Test optional strings treat blank as a successful None"""
        assert parse(raw, "string") == (None, True)

    def test_missing_error_message(self):
        """Test blank input reports the value as missing"""
        result = IntegerParser().parse("  ")
        assert result.error == "value is missing"


class TestIntegerParser:
    """Tests for IntegerParser"""

    def test_trims_whitespace(self):
        """Test surrounding whitespace is ignored"""
        assert parse(" 42 ", "integer") == (42, True)

    def test_negative_integer(self):
        """Test sign is accepted (domain checks happen later)"""
        assert parse("-5", "integer") == (-5, True)

    @pytest.mark.parametrize("raw", ["abc", "1.5", "1,000", "1e3", "12abc"])
    def test_malformed_integers(self, raw):
        """Test non-integer notation fails"""
        value, ok = parse(raw, "integer")
        assert ok is False
        assert value is None

    def test_out_of_int32_range(self):
        """Test values beyond 32-bit storage fail"""
        result = IntegerParser().parse(str(2 ** 31))
        assert result.ok is False
        assert "outside" in result.error

    @given(st.integers(min_value=-(2 ** 31), max_value=2 ** 31 - 1))
    def test_roundtrips_any_int32(self, value):
        """Test every 32-bit integer parses back to itself"""
        assert parse(str(value), "integer") == (value, True)


class TestDecimalParser:
    """Tests for DecimalParser"""

    def test_quantizes_to_cents(self):
        """Test values are rounded half-up to two places"""
        assert parse("9.995", "decimal") == (Decimal("10.00"), True)
        assert parse("9.994", "decimal") == (Decimal("9.99"), True)

    def test_integer_text_is_valid_amount(self):
        """Test whole numbers parse to amounts"""
        assert parse("60", "decimal") == (Decimal("60.00"), True)

    @pytest.mark.parametrize("raw", ["$10.00", "1,000.00", "ten", "1e3", "--1"])
    def test_malformed_amounts(self, raw):
        """Test currency symbols, separators and exponents fail"""
        assert parse(raw, "decimal") == (None, False)

    def test_precision_overflow(self):
        """Test magnitudes that do not fit DECIMAL(p,2) fail"""
        parser = DecimalParser({"digits": 5})
        assert parser.parse("999.99").ok is True
        assert parser.parse("1000.00").ok is False

    def test_wider_precision_parameter(self):
        """Test digits parameter widens the accepted range"""
        assert DecimalParser({"digits": 14}).parse("123456789012.00").ok is True
        assert DecimalParser().parse("123456789012.00").ok is False

    @given(st.decimals(min_value=Decimal("-99999999.99"), max_value=Decimal("99999999.99"), places=2))
    def test_two_place_decimals_roundtrip(self, value):
        """Test any two-place amount within precision parses exactly"""
        parsed, ok = parse(str(value), "decimal")
        assert ok is True
        assert parsed == value


class TestDateParsers:
    """Tests for DateParser and DateTimeParser"""

    @pytest.mark.parametrize("raw,expected", [
        ("2024-03-15", date(2024, 3, 15)),
        ("2024/03/15", date(2024, 3, 15)),
        ("20240315", date(2024, 3, 15)),
        ("15 Mar 2024", date(2024, 3, 15)),
        ("March 15, 2024", date(2024, 3, 15)),
        ("2024-03-15 14:22:00", date(2024, 3, 15)),
    ])
    def test_accepted_date_formats(self, raw, expected):
        """Test unambiguous date formats are accepted"""
        assert parse(raw, "date") == (expected, True)

    @pytest.mark.parametrize("raw", ["03/04/2024", "15/03/2024", "2024-02-30", "yesterday", "2024-13-01"])
    def test_ambiguous_or_invalid_dates_fail(self, raw):
        """Test day/month-first and impossible dates are rejected"""
        assert parse(raw, "date") == (None, False)

    def test_datetime_minute_precision(self):
        """Test timestamps without seconds are accepted"""
        assert parse("2024-03-15 14:22", "datetime") == (datetime(2024, 3, 15, 14, 22), True)

    def test_datetime_offset_converted_to_utc(self):
        """Test offsets are applied and dropped"""
        value, ok = parse("2024-03-15T18:00:00+02:00", "datetime")
        assert ok is True
        assert value == datetime(2024, 3, 15, 16, 0)

    def test_datetime_zulu_suffix(self):
        """Test a trailing Z means UTC"""
        assert parse("2024-03-15T18:00:00Z", "datetime") == (datetime(2024, 3, 15, 18, 0), True)

    def test_date_only_timestamp_is_midnight(self):
        """Test a date-only value parses as midnight"""
        assert DateTimeParser().parse("2024-03-15").value == datetime(2024, 3, 15)

    def test_parse_datetime_text_returns_none(self):
        """Test the shared helper returns None on no match"""
        assert parse_datetime_text("not a date") is None

    def test_to_date(self):
        """Test datetime truncation helper"""
        assert to_date(datetime(2024, 3, 15, 23, 59)) == date(2024, 3, 15)
        assert to_date(date(2024, 3, 15)) == date(2024, 3, 15)
        assert to_date(None) is None


class TestTextParsers:
    """Tests for StringParser and IdentifierParser"""

    def test_string_trimmed(self):
        """Test free text is trimmed"""
        assert StringParser().parse("  Trail Shoe ").value == "Trail Shoe"

    def test_identifier_trimmed(self):
        """Test identifiers are trimmed"""
        assert IdentifierParser().parse(" T100 ").value == "T100"

    def test_identifier_too_long(self):
        """Test identifiers longer than the column fail"""
        assert IdentifierParser({"max_length": 4}).parse("T10000").ok is False

    def test_string_max_length(self):
        """Test optional max length for strings"""
        result = StringParser({"max_length": 3}).parse("abcd")
        assert result.ok is False
        assert "exceeds" in result.error


class TestParserRegistry:
    """Tests for get_parser"""

    def test_get_parser_types(self):
        """Test registry returns the right parser classes"""
        assert isinstance(get_parser("decimal"), DecimalParser)
        assert isinstance(get_parser("date"), DateParser)
        assert get_parser("integer").type_name == "integer"

    def test_get_parser_passes_parameters(self):
        """Test parameters reach the parser"""
        assert get_parser("decimal", {"digits": 14}).parameters == {"digits": 14}

    def test_unknown_type(self):
        """Test unknown target type raises"""
        with pytest.raises(ValueError, match="Unsupported target type"):
            get_parser("money")
