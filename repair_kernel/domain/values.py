"""
Money and decimal helpers for repair-order pricing.

Prices, costs and totals travel between the pricing and tax engines as
``Money``. Quantities stay plain ``Decimal``. Neither ever holds a float.

Amounts keep full precision through allocation and division; ``round()``
(cents, ROUND_HALF_UP) is applied once, where a figure is written onto an
estimate line or a job total.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")

_ZERO = Decimal("0")


def round_half_up(value: Decimal, places: Decimal = CENT) -> Decimal:
    return value.quantize(places, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | str | None, default: Decimal = _ZERO) -> Decimal:
    """
    Read a quantity or amount coming from storage or a caller.

    ``None`` becomes ``default``.

    Raises:
        TypeError: ``value`` is a float.
        ValueError: ``value`` is not a number.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("float is not accepted for quantities or amounts")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal value: {value!r}") from e


def _scalar(value: Decimal | int | str) -> Decimal | None:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        return Decimal(str(value))
    return None


@dataclass(frozen=True, slots=True)
class Money:
    """An amount in one currency (three-letter code, stored upper case)."""

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "amount", to_decimal(self.amount))
        except TypeError as e:
            raise ValueError(f"Invalid amount (float): {self.amount}") from e
        code = (self.currency or "").strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Invalid currency code: {self.currency}")
        object.__setattr__(self, "currency", code)

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str = "USD") -> Money:
        return cls(to_decimal(amount), currency)

    @classmethod
    def zero(cls, currency: str = "USD") -> Money:
        return cls(_ZERO, currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == _ZERO

    @property
    def is_negative(self) -> bool:
        return self.amount < _ZERO

    def round(self) -> Money:
        """Cent value, ROUND_HALF_UP."""
        return Money(round_half_up(self.amount), self.currency)

    def clamp_non_negative(self) -> Money:
        """Zero in place of a negative amount; line prices never go below it."""
        return Money.zero(self.currency) if self.is_negative else self

    def _same_currency(self, other: Money) -> Decimal:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot combine {self.currency} and {other.currency} amounts"
            )
        return other.amount

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + self._same_currency(other), self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - self._same_currency(other), self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        scalar = _scalar(factor)
        if scalar is None:
            return NotImplemented
        return Money(self.amount * scalar, self.currency)

    def __truediv__(self, divisor: Decimal | int | str) -> Money:
        """Callers guard against a zero divisor."""
        scalar = _scalar(divisor)
        if scalar is None:
            return NotImplemented
        return Money(self.amount / scalar, self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
