"""
Unit tests for Amount, the fixed-precision decimal money type.

Verifies:
- Exact decimal arithmetic (no binary float drift)
- Explicit rounding at the persisted scales
- Float constructor prohibition
- Division by zero never yields Infinity
"""

from decimal import Decimal

import pytest

from exchange_kernel.domain.values import MONEY_DECIMAL_PLACES, RATE_DECIMAL_PLACES, Amount
from exchange_kernel.exceptions import AmountDivisionByZeroError, InvalidAmountError


class TestAmountConstruction:
    """Tests for building Amounts from the accepted input types."""

    def test_from_string(self):
        assert Amount("100.50").value == Decimal("100.50")

    def test_from_int(self):
        assert Amount(500_000_000).value == Decimal("500000000")

    def test_from_decimal(self):
        assert Amount(Decimal("0.000000001")).value == Decimal("0.000000001")

    def test_of_returns_same_instance(self):
        amount = Amount("1")
        assert Amount.of(amount) is amount

    def test_whitespace_stripped(self):
        assert Amount(" 42.5 ") == Amount("42.5")

    def test_float_rejected(self):
        """Floats must go through from_float so their repr is used explicitly."""
        with pytest.raises(InvalidAmountError):
            Amount(0.1)

    def test_bool_rejected(self):
        with pytest.raises(InvalidAmountError):
            Amount(True)

    def test_garbage_string_rejected(self):
        with pytest.raises(InvalidAmountError):
            Amount("not a number")

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_rejected(self, raw):
        with pytest.raises(InvalidAmountError):
            Amount(raw)

    def test_from_float_uses_shortest_repr(self):
        assert Amount.from_float(0.1) == Amount("0.1")

    def test_to_float_for_display(self):
        assert Amount("84000.5").to_float() == 84000.5


class TestAmountArithmetic:
    """Arithmetic stays exact in the 38-digit context."""

    def test_tenths_add_exactly(self):
        """The float classic 0.1 + 0.2 != 0.3 does not happen here."""
        assert Amount("0.1") + Amount("0.2") == Amount("0.3")

    def test_mixed_operands(self):
        assert Amount("10") + 5 == Amount("15")
        assert Amount("10") - Decimal("2.5") == Amount("7.5")
        assert 3 * Amount("1.5") == Amount("4.5")
        assert 100 - Amount("1") == Amount("99")

    def test_sum_over_amounts(self):
        total = sum([Amount("1.1"), Amount("2.2"), Amount("3.3")], Amount.zero())
        assert total == Amount("6.6")

    def test_sum_starting_from_int(self):
        assert sum([Amount("1"), Amount("2")]) == Amount("3")

    def test_large_irr_amount_over_rate(self):
        """IRR amounts in the hundreds of millions divide cleanly into CAD."""
        cad = (Amount("500000000") / Amount("84000")).quantize_money()
        assert cad == Amount("5952.380952381")

    def test_negation_and_abs(self):
        assert -Amount("5") == Amount("-5")
        assert abs(Amount("-5")) == Amount("5")

    def test_division_by_zero_raises(self):
        with pytest.raises(AmountDivisionByZeroError):
            Amount("1") / Amount.zero()

    def test_reverse_division_by_zero_raises(self):
        with pytest.raises(AmountDivisionByZeroError):
            1 / Amount.zero()

    def test_float_operand_not_supported(self):
        with pytest.raises(TypeError):
            Amount("1") + 0.5


class TestAmountRounding:
    """Rounding happens only when asked, half-up."""

    def test_round_half_up(self):
        assert Amount("10.555").round(2) == Amount("10.56")

    def test_round_negative_half_up(self):
        assert Amount("-10.555").round(2) == Amount("-10.56")

    def test_quantize_money_scale(self):
        result = Amount("1") / Amount("3")
        assert result.quantize_money().value.as_tuple().exponent == -MONEY_DECIMAL_PLACES

    def test_quantize_rate_scale(self):
        result = Amount("2") / Amount("3")
        assert result.quantize_rate().value.as_tuple().exponent == -RATE_DECIMAL_PLACES

    def test_no_implicit_rounding(self):
        third = Amount("1") / Amount("3")
        assert len(third.value.as_tuple().digits) > MONEY_DECIMAL_PLACES


class TestAmountComparison:

    def test_equal_regardless_of_trailing_zeros(self):
        assert Amount("1.0") == Amount("1.00")
        assert hash(Amount("1.0")) == hash(Amount("1.00"))

    def test_ordering(self):
        assert Amount("0.01") < Amount("0.02")
        assert Amount("5") >= 5
        assert max(Amount("1"), Amount("3"), Amount("2")) == Amount("3")

    def test_sign_predicates(self):
        assert Amount.zero().is_zero
        assert Amount("0.000000001").is_positive
        assert Amount("-1").is_negative

    def test_str_is_plain_notation(self):
        assert str(Amount("1E+3")) == "1000"
        assert repr(Amount("2.5")) == "Amount('2.5')"
