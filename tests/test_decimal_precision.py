"""
Regression Tests for Minor-Unit Amount Handling
Amounts must convert to integer minor units exactly, never through float
"""

import pytest
from decimal import Decimal

from utils.decimal_precision import MonetaryDecimal
from utils.error_handler import ValidationError
from utils.input_validation import InputValidator


class TestMinorUnitConversion:
    """Decimal strings to integer cents"""

    def test_exact_two_place_amount(self):
        """"123.45" is exactly 12345 minor units"""
        assert InputValidator.validate_amount("123.45") == 12345

    def test_whole_and_one_place_amounts(self):
        assert InputValidator.validate_amount("100") == 10000
        assert InputValidator.validate_amount("100.5") == 10050
        assert InputValidator.validate_amount("0.01") == 1

    def test_three_decimal_places_rejected(self):
        """"123.456" exceeds the format and is rejected, not rounded"""
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_amount("123.456")
        assert "amount" in exc_info.value.field_errors

    @pytest.mark.parametrize("raw", ["0", "0.00", "-5", "abc", "", None, "1e3", "NaN", "12,50"])
    def test_non_positive_or_unparsable_rejected(self, raw):
        with pytest.raises(ValidationError):
            InputValidator.validate_amount(raw)

    def test_round_half_up_on_scaling(self):
        """Direct conversion rounds half up when given more precision"""
        assert MonetaryDecimal.to_minor_units("0.005") == 1
        assert MonetaryDecimal.to_minor_units("2.675") == 268
        assert MonetaryDecimal.to_minor_units(Decimal("10.004")) == 1000

    def test_float_is_refused(self):
        """Floats would carry representation drift into stored amounts"""
        with pytest.raises(TypeError):
            MonetaryDecimal.to_minor_units(0.1)

    def test_minor_units_format_for_display(self):
        assert MonetaryDecimal.from_minor_units(12345) == Decimal("123.45")
        assert MonetaryDecimal.format_amount(123456789, "ZAR") == "1,234,567.89 ZAR"

    def test_stored_amount_is_integer(self, services, alice):
        """Round trip through the store yields the same integer"""
        outcome = services.payments.create_payment(
            alice, "123.45", "ZAR", "87654321", "ABCDUS33", "0b5f8c2e-3c1a-4f7e-9a55-1d2c3b4a5e6f"
        )
        payments = services.payments.list_own(alice)
        assert outcome.result["amountCents"] == 12345
        assert payments[0].amount_cents == 12345
        assert isinstance(payments[0].amount_cents, int)
