from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
}


def ensure_cents(value: object, field: str = "amount") -> int:
    # bool is an int subclass; a True refund is a bug, not one cent.
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field} must be int cents, got {type(value).__name__}")
    return value


def percent_of(amount: int, rate_percent: int) -> int:
    """Integer percentage of a cent amount, rounded half-up to the nearest cent."""
    ensure_cents(amount)
    value = Decimal(amount) * Decimal(rate_percent) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(amount: int, currency: str = "EUR") -> str:
    """French-style display: ``123456`` EUR -> ``1 234,56 €``."""
    ensure_cents(amount)
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), 100)
    grouped = f"{major:,}".replace(",", " ")
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())
    return f"{sign}{grouped},{minor:02d} {symbol}"


@dataclass(frozen=True)
class Money:
    amount: int
    currency: str = "EUR"

    def __post_init__(self) -> None:
        ensure_cents(self.amount)
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", self.currency.upper())

    def _check_currency(self, other: Money) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise ValueError(f"currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def percent(self, rate_percent: int) -> Money:
        return Money(percent_of(self.amount, rate_percent), self.currency)

    @classmethod
    def zero(cls, currency: str = "EUR") -> Money:
        return cls(0, currency)

    def format(self) -> str:
        return format_money(self.amount, self.currency)

    def __str__(self) -> str:
        return self.format()
