"""Tests for value coercion."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from tbp.config import convert


class TestParsers:
    """Test the string parsers."""

    @pytest.mark.parametrize("raw", ["true", "TRUE", "yes", "1", "on", "enable", "enabled", "y", "t"])
    def test_true_vocabulary(self, raw: str) -> None:
        assert convert.parse_bool(raw) is True

    @pytest.mark.parametrize("raw", ["false", "No", "0", "off", "disable", "disabled", "n", "f", ""])
    def test_false_vocabulary(self, raw: str) -> None:
        assert convert.parse_bool(raw) is False

    def test_invalid_bool_lists_vocabulary(self) -> None:
        with pytest.raises(ValueError, match="supported values"):
            convert.parse_bool("maybe")

    def test_int_is_strict(self) -> None:
        assert convert.parse_int("-42") == -42
        for raw in ("1_000", "1.5", "0x10", " 1", ""):
            with pytest.raises(ValueError):
                convert.parse_int(raw)

    def test_float_accepts_exponent(self) -> None:
        assert convert.parse_float("1e3") == 1000.0
        assert convert.parse_float(".5") == 0.5
        with pytest.raises(ValueError):
            convert.parse_float("1.2.3")


class TestDurations:
    """Test duration parsing and formatting."""

    def test_compound_duration(self) -> None:
        assert convert.parse_duration("1h30m") == timedelta(hours=1, minutes=30)
        assert convert.parse_duration("2h45m10s") == timedelta(hours=2, minutes=45, seconds=10)

    def test_fractional_and_sub_second_units(self) -> None:
        assert convert.parse_duration("1.5h") == timedelta(minutes=90)
        assert convert.parse_duration("300ms") == timedelta(milliseconds=300)
        assert convert.parse_duration("250us") == timedelta(microseconds=250)
        assert convert.parse_duration("250µs") == timedelta(microseconds=250)

    def test_sign_and_zero(self) -> None:
        assert convert.parse_duration("-5s") == timedelta(seconds=-5)
        assert convert.parse_duration("0") == timedelta(0)

    @pytest.mark.parametrize("raw", ["10", "", "5x", "h", "1h 30m"])
    def test_invalid_duration(self, raw: str) -> None:
        with pytest.raises(ValueError, match="invalid duration"):
            convert.parse_duration(raw)

    def test_out_of_range_duration(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            convert.parse_duration("100000000000h")

    def test_format_duration(self) -> None:
        assert convert.format_duration(timedelta(hours=1, minutes=30)) == "1h30m0s"
        assert convert.format_duration(timedelta(seconds=90)) == "1m30s"
        assert convert.format_duration(timedelta(milliseconds=500)) == "500ms"
        assert convert.format_duration(timedelta(seconds=1.5)) == "1.5s"
        assert convert.format_duration(timedelta(0)) == "0s"
        assert convert.format_duration(timedelta(seconds=-30)) == "-30s"

    def test_formatted_duration_parses_back(self) -> None:
        value = timedelta(hours=26, minutes=3, seconds=4.25)
        assert convert.parse_duration(convert.format_duration(value)) == value


class TestTimestamps:
    """Test timestamp parsing."""

    def test_rfc3339_utc(self) -> None:
        assert convert.parse_timestamp("2024-01-15T10:30:00Z") == datetime(
            2024, 1, 15, 10, 30, tzinfo=timezone.utc
        )

    def test_rfc3339_offset(self) -> None:
        parsed = convert.parse_timestamp("2024-01-15T10:30:00+02:00")
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc)

    def test_rfc3339_nano_truncates_to_microseconds(self) -> None:
        parsed = convert.parse_timestamp("2024-01-15T10:30:00.123456789Z")
        assert parsed.microsecond == 123456

    def test_fallback_layouts_are_utc(self) -> None:
        assert convert.parse_timestamp("2024-01-15") == datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert convert.parse_timestamp("2024-01-15 10:30:00") == datetime(
            2024, 1, 15, 10, 30, tzinfo=timezone.utc
        )

    def test_invalid_timestamp(self) -> None:
        with pytest.raises(ValueError, match="supported formats"):
            convert.parse_timestamp("15/01/2024")


class TestAutoConvert:
    """Test type auto-detection for environment values."""

    def test_detection_order(self) -> None:
        assert convert.auto_convert("true") is True
        assert convert.auto_convert("1") is True
        assert convert.auto_convert("42") == 42
        assert convert.auto_convert("3.14") == 3.14
        assert convert.auto_convert("30s") == timedelta(seconds=30)
        assert convert.auto_convert("a,b,c") == ["a", "b", "c"]
        assert convert.auto_convert("hello") == "hello"

    def test_decimal_point_stays_float(self) -> None:
        value = convert.auto_convert("123.0")
        assert isinstance(value, float)
        assert value == 123.0

    def test_empty_value_stays_empty_string(self) -> None:
        assert convert.auto_convert("") == ""

    def test_int64_overflow_falls_back_to_float(self) -> None:
        value = convert.auto_convert("9223372036854775808")
        assert isinstance(value, float)

    def test_out_of_range_duration_stays_string(self) -> None:
        assert convert.auto_convert("100000000000h") == "100000000000h"

    def test_words_with_unit_letters_stay_strings(self) -> None:
        assert convert.auto_convert("somehost") == "somehost"

    def test_single_element_list_stays_string(self) -> None:
        assert convert.auto_convert("a,") == "a,"


class TestConvertByHint:
    """Test explicit type hints."""

    def test_width_overflow(self) -> None:
        assert convert.convert_by_hint("127", "int8") == 127
        with pytest.raises(ValueError, match="overflows int8"):
            convert.convert_by_hint("200", "int8")
        with pytest.raises(ValueError, match="overflows uint"):
            convert.convert_by_hint("-1", "unsigned")

    def test_slices(self) -> None:
        assert convert.convert_by_hint(" a, b ,,", "stringslice") == ["a", "b"]
        assert convert.convert_by_hint("80, 443", "[]int") == [80, 443]
        assert convert.convert_by_hint("1.5,2", "floats") == [1.5, 2.0]
        assert convert.convert_by_hint("yes,off", "boolslice") == [True, False]

    def test_slice_error_names_element(self) -> None:
        with pytest.raises(ValueError, match=r"'x' \(element 1\) to integer"):
            convert.convert_by_hint("1,x", "intslice")

    def test_string_hint_keeps_raw_value(self) -> None:
        assert convert.convert_by_hint("true", "string") == "true"

    def test_hint_is_case_insensitive(self) -> None:
        assert convert.convert_by_hint("5m", "Duration") == timedelta(minutes=5)

    def test_unknown_hint(self) -> None:
        with pytest.raises(ValueError, match="supported types"):
            convert.convert_by_hint("1", "complex")


class TestCoercion:
    """Test coercion of stored values."""

    def test_to_int(self) -> None:
        assert convert.to_int(3.0) == 3
        assert convert.to_int("42") == 42
        with pytest.raises(ValueError, match="fractional"):
            convert.to_int(3.5)
        with pytest.raises(ValueError):
            convert.to_int(True)

    def test_to_float_widens_int(self) -> None:
        assert convert.to_float(2) == 2.0
        assert math.isinf(convert.to_float("inf"))

    def test_to_bool(self) -> None:
        assert convert.to_bool(1) is True
        assert convert.to_bool("off") is False
        with pytest.raises(ValueError):
            convert.to_bool(2)

    def test_to_duration_numbers_are_seconds(self) -> None:
        assert convert.to_duration(5) == timedelta(seconds=5)
        assert convert.to_duration("2m") == timedelta(minutes=2)

    def test_to_timestamp_numbers_are_epoch(self) -> None:
        assert convert.to_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_out_of_range_numbers(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            convert.to_duration(10**20)
        with pytest.raises(ValueError, match="out of range"):
            convert.to_timestamp(10**20)

    def test_to_string_list(self) -> None:
        assert convert.to_string_list([1, True, "x"]) == ["1", "true", "x"]
        assert convert.to_string_list("a, b") == ["a", "b"]
        with pytest.raises(ValueError):
            convert.to_string_list(5)

    def test_format_value(self) -> None:
        assert convert.format_value(None) == ""
        assert convert.format_value(False) == "false"
        assert convert.format_value(["a", 1]) == "a,1"
        assert convert.format_value(timedelta(seconds=30)) == "30s"
