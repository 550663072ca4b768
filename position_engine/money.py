"""
Position Engine - Money.

============================================================
PURPOSE
============================================================
Currency identifiers and currency-tagged decimal amounts.

INVARIANTS:
- Currency codes are case-normalized (upper case)
- Arithmetic between two amounts requires the same currency
- Multiplying by a scalar keeps the currency

A currency mismatch is a programming error: it raises
CurrencyMismatchError and is never coerced.

============================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from .exceptions import CurrencyMismatchError


Scalar = Union[Decimal, int]


# ============================================================
# CURRENCY
# ============================================================

@dataclass(frozen=True, order=True)
class Currency:
    """Currency identified by its code (e.g. BTC, USDT)."""

    code: str

    def __post_init__(self):
        normalized = self.code.strip().upper()
        if not normalized:
            raise ValueError("Currency code must not be empty")
        object.__setattr__(self, "code", normalized)

    def __str__(self) -> str:
        return self.code


def _as_currency(value: Union[Currency, str]) -> Currency:
    if isinstance(value, Currency):
        return value
    return Currency(value)


# ============================================================
# CURRENCY PAIR
# ============================================================

@dataclass(frozen=True, order=True)
class CurrencyPair:
    """
    Currency pair (e.g. BTC/USDT).

    The base currency is the one bought and sold, the quote
    currency is the one prices and gains are expressed in.
    """

    base: Currency
    """Base currency."""

    quote: Currency
    """Quote (settlement) currency."""

    SEPARATOR = "/"

    def __post_init__(self):
        object.__setattr__(self, "base", _as_currency(self.base))
        object.__setattr__(self, "quote", _as_currency(self.quote))

    @classmethod
    def parse(cls, value: str) -> "CurrencyPair":
        """
        Parse a pair written as BASE/QUOTE.

        Raises:
            ValueError: If the value has no separator
        """
        base, separator, quote = value.partition(cls.SEPARATOR)
        if not separator:
            raise ValueError(f"Invalid currency pair: {value!r}")
        return cls(Currency(base), Currency(quote))

    def __str__(self) -> str:
        return f"{self.base}{self.SEPARATOR}{self.quote}"


# ============================================================
# CURRENCY AMOUNT
# ============================================================

@dataclass(frozen=True)
class CurrencyAmount:
    """Decimal value tagged with its currency."""

    value: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", Decimal(str(self.value)))
        object.__setattr__(self, "currency", _as_currency(self.currency))

    @classmethod
    def zero(cls, currency: Union[Currency, str]) -> "CurrencyAmount":
        """Zero amount in the given currency."""
        return cls(Decimal("0"), _as_currency(currency))

    def _check_currency(self, other: "CurrencyAmount", operation: str) -> None:
        if not isinstance(other, CurrencyAmount):
            raise TypeError(
                f"Cannot {operation} CurrencyAmount and {type(other).__name__}"
            )
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency, operation)

    def add(self, other: "CurrencyAmount") -> "CurrencyAmount":
        self._check_currency(other, "add")
        return CurrencyAmount(self.value + other.value, self.currency)

    def subtract(self, other: "CurrencyAmount") -> "CurrencyAmount":
        self._check_currency(other, "subtract")
        return CurrencyAmount(self.value - other.value, self.currency)

    def multiply(self, scalar: Scalar) -> "CurrencyAmount":
        if isinstance(scalar, CurrencyAmount):
            raise TypeError("Cannot multiply two currency amounts")
        return CurrencyAmount(self.value * Decimal(scalar), self.currency)

    def __add__(self, other: "CurrencyAmount") -> "CurrencyAmount":
        return self.add(other)

    def __sub__(self, other: "CurrencyAmount") -> "CurrencyAmount":
        return self.subtract(other)

    def __mul__(self, scalar: Scalar) -> "CurrencyAmount":
        return self.multiply(scalar)

    __rmul__ = __mul__

    def __neg__(self) -> "CurrencyAmount":
        return CurrencyAmount(-self.value, self.currency)

    def __lt__(self, other: "CurrencyAmount") -> bool:
        self._check_currency(other, "compare")
        return self.value < other.value

    def __le__(self, other: "CurrencyAmount") -> bool:
        self._check_currency(other, "compare")
        return self.value <= other.value

    def __gt__(self, other: "CurrencyAmount") -> bool:
        self._check_currency(other, "compare")
        return self.value > other.value

    def __ge__(self, other: "CurrencyAmount") -> bool:
        self._check_currency(other, "compare")
        return self.value >= other.value

    def __str__(self) -> str:
        return f"{self.value} {self.currency}"
