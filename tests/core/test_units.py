"""Tests for unit conversion and amount input handling."""

import pytest

from batchbridge.core.units import (
    clamp_to_decimals,
    format_units,
    format_usd,
    parse_units,
    sanitize_amount_input,
    to_float_amount,
)


class TestFormatUnits:
    def test_strips_trailing_zeros(self):
        assert format_units(1_500_000, 6) == "1.5"

    def test_whole_amount(self):
        assert format_units(2 * 10 ** 18, 18) == "2"

    def test_small_amount_is_zero_padded(self):
        assert format_units(1, 6) == "0.000001"

    def test_zero_decimals(self):
        assert format_units(42, 0) == "42"


class TestParseUnits:
    def test_parses_fraction(self):
        assert parse_units("1.5", 6) == 1_500_000

    def test_truncates_excess_precision(self):
        assert parse_units("0.1234567", 6) == 123_456

    def test_amounts_beyond_default_decimal_precision(self):
        assert parse_units("12345678901234567890123.5", 18) == 12345678901234567890123 * 10 ** 18 + 5 * 10 ** 17

    @pytest.mark.parametrize("text", ["abc", "", "1.2.3"])
    def test_invalid_input_raises(self, text):
        with pytest.raises(ValueError):
            parse_units(text, 18)


class TestAmountInput:
    def test_sanitize_strips_non_numeric(self):
        assert sanitize_amount_input("$1,234.5") == "1234.5"

    def test_sanitize_clamps_fraction(self):
        assert sanitize_amount_input("0.123456789") == "0.12345"

    def test_clamp_drops_empty_fraction(self):
        assert clamp_to_decimals("12.", 5) == "12"

    def test_to_float_amount(self):
        assert to_float_amount(2_500_000, 6) == 2.5


class TestFormatUsd:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "$0.00"),
            (0.004, "<$0.01"),
            (12.5, "$12.50"),
            (1500, "$1.50K"),
            (2_500_000, "$2.50M"),
        ],
    )
    def test_format_usd(self, value, expected):
        assert format_usd(value) == expected
