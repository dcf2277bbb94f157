"""
Unit tests for Money and decimal handling.

Verifies:
- Decimal math precision
- Rounding determinism (ROUND_HALF_UP to cents)
- Float prohibition
- Currency mixing is refused
"""

from decimal import Decimal

import pytest

from repair_kernel.domain.values import Money, round_half_up, to_decimal


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2.345", "2.35"),
            ("2.344", "2.34"),
            ("0.005", "0.01"),
            ("-2.345", "-2.35"),
            ("10", "10.00"),
        ],
    )
    def test_rounds_to_cents(self, value, expected):
        assert round_half_up(Decimal(value)) == Decimal(expected)


class TestToDecimal:
    def test_none_becomes_default(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal(None, Decimal("1")) == Decimal("1")

    def test_string_and_int(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(3) == Decimal("3")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(1.5)

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            to_decimal("twelve")


class TestMoney:
    def test_string_amount_coerced(self):
        money = Money("19.99")
        assert money.amount == Decimal("19.99")
        assert money.currency == "USD"

    def test_float_rejected(self):
        with pytest.raises(ValueError):
            Money(19.99)

    def test_currency_normalized(self):
        assert Money(Decimal("1"), "eur").currency == "EUR"

    def test_invalid_currency(self):
        with pytest.raises(ValueError):
            Money(Decimal("1"), "EURO")

    def test_arithmetic_keeps_precision(self):
        total = Money.of("0.10") + Money.of("0.20")
        assert total.amount == Decimal("0.30")
        assert (Money.of("10") * Decimal("1.5")).amount == Decimal("15.0")
        assert (Money.of("10") / 3).round().amount == Decimal("3.33")

    def test_round_half_up(self):
        assert Money.of("2.675").round().amount == Decimal("2.68")

    def test_currency_mixing_refused(self):
        with pytest.raises(ValueError):
            Money.of("1", "USD") + Money.of("1", "EUR")

    def test_clamp_non_negative(self):
        assert Money.of("-4.00").clamp_non_negative().is_zero
        assert Money.of("4.00").clamp_non_negative().amount == Decimal("4.00")

    def test_sign_checks(self):
        assert Money.zero("eur").is_zero
        assert Money.of("-0.01").is_negative
        assert not Money.of("0.00").is_negative

    def test_scalar_math(self):
        assert Money.of("12.50") * 2 == Money.of("25.00")
        assert (Money.of("100") / "3").round() == Money.of("33.33")

    def test_garbage_amount(self):
        with pytest.raises(ValueError):
            Money("twelve")
