from __future__ import annotations

import pytest

from bk_billing.domain.money import Money, ensure_cents, format_money, percent_of


def test_format_money_uses_french_grouping_and_comma_decimals():
    assert format_money(123456) == "1 234,56 €"
    assert format_money(5) == "0,05 €"
    assert format_money(100000000) == "1 000 000,00 €"
    assert format_money(-2550) == "-25,50 €"
    assert format_money(1999, "USD") == "19,99 $"
    assert format_money(1999, "MAD") == "19,99 MAD"


def test_percent_of_rounds_half_up_without_floats():
    assert percent_of(10000, 20) == 2000
    assert percent_of(12345, 20) == 2469
    assert percent_of(3, 50) == 2
    assert percent_of(1, 20) == 0
    assert percent_of(0, 20) == 0


def test_ensure_cents_rejects_floats_and_bools():
    assert ensure_cents(42) == 42
    with pytest.raises(TypeError):
        ensure_cents(10.5)
    with pytest.raises(TypeError):
        ensure_cents(True)
    with pytest.raises(TypeError):
        format_money(1.0)


def test_money_arithmetic_is_currency_safe():
    total = Money(10000) + Money(2000)
    assert total == Money(12000, "EUR")
    assert (total - Money(500)).amount == 11500
    assert Money(10000).percent(20) == Money(2000)
    assert str(Money(123456)) == "1 234,56 €"
    assert Money(500, "eur").currency == "EUR"
    assert Money.zero().amount == 0

    with pytest.raises(ValueError):
        Money(100, "EUR") + Money(100, "USD")
    with pytest.raises(TypeError):
        Money(100) + 5
    with pytest.raises(ValueError):
        Money(100, "EURO")
