# tests/test_currency.py
from datetime import date
from decimal import Decimal

import pytest

from medsales.services.currency import (
    StaticRateProvider,
    convert,
    currency_snapshot,
    default_provider,
    supported_currencies,
)


def test_static_matrix_diagonal_is_exactly_one():
    m = default_provider().matrix()
    for cur in supported_currencies():
        assert m[cur][cur] == Decimal("1")


def test_rates_derived_from_try_values():
    p = StaticRateProvider({"USD": Decimal("37.92"), "EUR": Decimal("40.94")})
    assert p.get_rate("USD", "TRY") == Decimal("37.92")
    assert p.get_rate("EUR", "TRY") == Decimal("40.94")
    assert p.get_rate("USD", "EUR") == Decimal("37.92") / Decimal("40.94")


def test_non_positive_rate_rejected():
    with pytest.raises(ValueError):
        StaticRateProvider({"USD": Decimal("0")})


def test_same_currency_returns_amount_unchanged():
    assert convert(Decimal("123.456"), "EUR", "EUR") == Decimal("123.456")


def test_usd_to_try_two_units_of_hundred():
    # 2 x 100 USD, kur 37.92
    assert convert(Decimal("200"), "USD", "TRY") == Decimal("7584.00")


@pytest.mark.parametrize("a,b", [("USD", "EUR"), ("TRY", "USD"), ("EUR", "TRY")])
def test_round_trip_restores_amount(a, b):
    back = convert(convert(Decimal("1000"), a, b), b, a)
    assert abs(back - Decimal("1000")) < Decimal("1e-12")


def test_unknown_or_missing_currency_passes_amount_through():
    assert convert(50, "GBP", "TRY") == Decimal("50")
    assert convert(50, None, "TRY") == Decimal("50")


def test_injected_provider_is_used():
    class Fixed:
        def get_rate(self, a, b):
            return Decimal("2")

    assert convert(10, "USD", "EUR", provider=Fixed()) == Decimal("20")


def test_snapshot_lists_other_currencies():
    text = currency_snapshot("USD", today=date(2025, 3, 7))
    assert text.startswith("------ CURRENCY CONVERSION INFO (07.03.2025) ------\n")
    assert "Proposal currency: USD" in text
    assert "1 USD = 37.9200 TRY" in text
    assert "1 USD = 0.9262 EUR" in text
    assert "1 USD = 1.0000 USD" not in text
    assert text.endswith("-" * 51 + "\n\n")
