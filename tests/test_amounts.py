"""
Tests for fixed-point amount helpers

Money is Decimal only: floats and malformed input are rejected.
"""

import pytest
from decimal import Decimal

from bank_ledger.amounts import format_amount, parse_amount, quantize_amount, require_positive
from bank_ledger.errors import ErrorKind, InvalidAmountError


class TestParseAmount:
    """Test conversion of caller input to Decimal"""

    def test_decimal_is_quantized(self):
        assert parse_amount(Decimal('10.005')) == Decimal('10.01')
        assert parse_amount(Decimal('10')) == Decimal('10.00')

    def test_int_and_string(self):
        assert parse_amount(25) == Decimal('25.00')
        assert parse_amount("100.50") == Decimal('100.50')
        assert parse_amount("$1,250.50") == Decimal('1250.50')
        assert parse_amount("10,5") == Decimal('10.50')
        assert parse_amount("1,250") == Decimal('1250.00')
        assert parse_amount(" -$1,000,000.25 ") == Decimal('-1000000.25')
        assert parse_amount("$-5") == Decimal('-5.00')

    def test_float_rejected(self):
        with pytest.raises(InvalidAmountError, match="Floating point"):
            parse_amount(10.0)

    def test_bool_rejected(self):
        with pytest.raises(InvalidAmountError):
            parse_amount(True)

    def test_malformed_strings_rejected(self):
        for value in ["", "abc", "1.2.3", "1e3", "12abc3", "1,2,3", "12,34,567",
                      "1,2345", "NaN", "Infinity", "--5", "$", "5$", "1 000"]:
            with pytest.raises(InvalidAmountError):
                parse_amount(value)

    def test_non_finite_rejected(self):
        with pytest.raises(InvalidAmountError, match="finite"):
            parse_amount(Decimal('NaN'))
        with pytest.raises(InvalidAmountError, match="finite"):
            parse_amount(Decimal('Infinity'))

    def test_error_is_validation_kind(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount(1.5)
        assert exc_info.value.kind == ErrorKind.VALIDATION


class TestRequirePositive:

    def test_positive_passes(self):
        assert require_positive("0.01") == Decimal('0.01')

    def test_zero_and_negative_rejected(self):
        for value in [0, "0", "-5", Decimal('-0.01')]:
            with pytest.raises(InvalidAmountError):
                require_positive(value)

    def test_rounds_to_zero_rejected(self):
        """Sub-cent amounts round to zero and are not positive"""
        with pytest.raises(InvalidAmountError):
            require_positive("0.004")


def test_quantize_and_format():
    assert quantize_amount(Decimal('2.345')) == Decimal('2.35')
    assert quantize_amount(Decimal('2.345'), precision=0) == Decimal('2')
    assert format_amount(Decimal('1234.5')) == "1,234.50"


class TestAmountRange:
    """Amounts too large to hold at ledger precision are rejected, not crashed on"""

    def test_oversized_inputs_rejected(self):
        for value in [10 ** 30, Decimal('1E+30'), "1" + "0" * 30]:
            with pytest.raises(InvalidAmountError, match="out of range"):
                parse_amount(value)

    def test_quantize_overflow(self):
        with pytest.raises(InvalidAmountError, match="out of range"):
            quantize_amount(Decimal('9' * 27))

    def test_largest_whole_amount_accepted(self):
        assert parse_amount("9" * 26) == Decimal('9' * 26)
