"""
Unit Tests for Amount Conversion

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

Tests the AmountConverter:
- Display strings to base units with 9 decimals (truncation, padding)
- Base-unit parsing for --base-units input
- Display rendering with trailing zeros removed
- Validation rules (zero, negative, u64 range, max supply)
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.errors import (
    ExceedsMaxSupplyError,
    InvalidAmountFormatError,
    NegativeAmountError,
    ZeroAmountError,
)
from capledger.ledger.amount_converter import U64_MAX, AmountConverter


@pytest.fixture
def converter() -> AmountConverter:
    return AmountConverter()


# =============================================================================
# Display -> Base Units
# =============================================================================

class TestToBaseUnits:

    @pytest.mark.parametrize("text,expected", [
        ("1", 1_000_000_000),
        ("1.5", 1_500_000_000),
        ("0.000000001", 1),
        (".5", 500_000_000),
        ("3.", 3_000_000_000),
        ("0", 0),
        ("  42  ", 42_000_000_000),
    ])
    def test_plain_decimal_strings(self, converter, text, expected):
        assert converter.to_base_units(text) == expected

    def test_excess_fraction_digits_are_truncated(self, converter):
        assert converter.to_base_units("1.0000000005") == 1_000_000_000
        assert converter.to_base_units("0.0000000009") == 0

    def test_int_and_decimal_inputs(self, converter):
        assert converter.to_base_units(7) == 7_000_000_000
        assert converter.to_base_units(Decimal("2.25")) == 2_250_000_000

    def test_custom_decimals(self):
        assert AmountConverter(decimals=2).to_base_units("1.239") == 123
        assert AmountConverter(decimals=0).to_base_units("5.9") == 5

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", "1e9", "--1", ".", "0x10"])
    def test_malformed_strings_rejected(self, converter, value):
        with pytest.raises(InvalidAmountFormatError):
            converter.to_base_units(value)

    @pytest.mark.parametrize("value", [1.5, True, None])
    def test_unsupported_types_rejected(self, converter, value):
        with pytest.raises(InvalidAmountFormatError):
            converter.to_base_units(value)

    def test_negative_rejected(self, converter):
        with pytest.raises(NegativeAmountError):
            converter.to_base_units("-1")

    def test_negative_zero_is_zero(self, converter):
        assert converter.to_base_units("-0") == 0


# =============================================================================
# Base-Unit Parsing and Display
# =============================================================================

class TestParseBaseUnits:

    def test_integer_string(self, converter):
        assert converter.parse_base_units("1000000000") == 1_000_000_000

    def test_int_passthrough(self, converter):
        assert converter.parse_base_units(5) == 5

    def test_fraction_rejected(self, converter):
        with pytest.raises(InvalidAmountFormatError):
            converter.parse_base_units("1.5")

    def test_negative_rejected(self, converter):
        with pytest.raises(NegativeAmountError):
            converter.parse_base_units("-3")


class TestToDisplay:

    def test_whole_amount_has_no_fraction(self, converter):
        assert converter.to_display(1_000_000_000) == "1"

    def test_trailing_zeros_dropped(self, converter):
        assert converter.to_display(1_500_000_000) == "1.5"
        assert converter.to_display(1) == "0.000000001"

    def test_format_amount_with_symbol(self, converter):
        assert converter.format_amount(1_234_500_000_000, "HETRA") == "1,234.5 HETRA"

    def test_negative_rejected(self, converter):
        with pytest.raises(NegativeAmountError):
            converter.to_display(-1)


# =============================================================================
# Validation
# =============================================================================

class TestValidate:

    def test_zero_rejected_by_default(self, converter):
        with pytest.raises(ZeroAmountError):
            converter.validate(0)

    def test_zero_allowed_when_requested(self, converter):
        assert converter.validate(0, allow_zero=True) == 0

    def test_negative_rejected(self, converter):
        with pytest.raises(NegativeAmountError):
            converter.validate(-5)

    def test_u64_boundary(self, converter):
        assert converter.validate(U64_MAX) == U64_MAX
        with pytest.raises(InvalidAmountFormatError):
            converter.validate(U64_MAX + 1)

    def test_max_supply_counts_current_supply(self, converter):
        assert converter.validate(40, max_supply=100, current_supply=60) == 40
        with pytest.raises(ExceedsMaxSupplyError) as exc_info:
            converter.validate(41, max_supply=100, current_supply=60)
        assert exc_info.value.error_code == "AMT-004"

    def test_non_int_rejected(self, converter):
        with pytest.raises(InvalidAmountFormatError):
            converter.validate("10")
