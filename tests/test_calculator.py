# tests/test_calculator.py
from datetime import date
from decimal import Decimal

import pytest

from medsales.core.errors import ValidationError
from medsales.services.calculator import (
    ProposalDraft,
    compute_totals,
    make_item,
    payment_schedule,
)


def _try_item(qty=10, price=100, excess=0):
    return make_item(1, "Spinal Cage", qty, price, "TRY", "TRY", excess)


def test_item_converted_to_proposal_currency():
    it = make_item(1, "Titanium Plate", 2, 100, "USD", "TRY")
    assert it.original_total == Decimal("200")
    assert it.total == Decimal("7584.00")


def test_discount_down_payment_installments():
    t = compute_totals([_try_item()], 10, 20, 3)
    assert t.subtotal == Decimal("1000")
    assert t.discount_amount == Decimal("100")
    assert t.total_after_discount == Decimal("900")
    assert t.down_payment_amount == Decimal("180")
    assert t.remaining_amount == Decimal("720")
    assert t.installment_amount == Decimal("240")


def test_zero_installments_gives_zero_installment_amount():
    t = compute_totals([_try_item()], 0, 0, 0)
    assert t.installment_amount == Decimal("0")
    assert t.remaining_amount == Decimal("1000")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quantity": -1},
        {"quantity": 0},
        {"quantity": "1.5"},
        {"unit_price": -5},
        {"unit_price": "abc"},
        {"excess_percentage": -10},
    ],
)
def test_invalid_item_input_rejected(kwargs):
    data = dict(product_id=1, product_name="X", quantity=1, unit_price=10,
                product_currency="TRY", proposal_currency="TRY")
    data.update(kwargs)
    with pytest.raises(ValidationError):
        make_item(**data)


@pytest.mark.parametrize("discount,down,count", [(-1, 0, 1), (101, 0, 1), (0, -5, 1), (0, 0, -1)])
def test_invalid_totals_parameters_rejected(discount, down, count):
    with pytest.raises(ValidationError):
        compute_totals([_try_item()], discount, down, count)


def test_excess_counts_in_quantity_not_in_money():
    it = _try_item(qty=10, excess=20)
    assert it.effective_quantity == Decimal("12")
    assert it.has_excess
    t = compute_totals([it, _try_item(qty=3)])
    assert t.subtotal == Decimal("1300")
    assert t.total_quantity_with_bonus == Decimal("15")


def test_currency_switch_recomputes_from_original_total():
    d = ProposalDraft(currency="TRY")
    d.add_item(1, "Titanium Plate", 2, 100, "USD")
    d.add_item(2, "Bone Screw", 1, 50, "EUR")
    before = [it.total for it in d.items]

    d.set_currency("EUR")
    d.set_currency("USD")
    d.set_currency("TRY")

    assert [it.total for it in d.items] == before
    assert d.items[0].total == Decimal("7584.00")


def test_update_and_remove_item_recompute_totals():
    d = ProposalDraft()
    d.add_item(3, "Spinal Cage", 1, 1000, "TRY")
    d.add_item(3, "Spinal Cage", 1, 500, "TRY")
    d.update_item(0, quantity=2)
    assert d.totals.subtotal == Decimal("2500")
    d.remove_item(1)
    assert d.totals.subtotal == Decimal("2000")
    with pytest.raises(ValidationError):
        d.remove_item(5)


def test_campaign_locks_discount_until_cleared():
    d = ProposalDraft()
    d.add_item(3, "Spinal Cage", 1, 1000, "TRY")
    d.apply_campaign(1, [_try_item()], 15)
    assert d.general_discount_percent == Decimal("15")
    with pytest.raises(ValidationError):
        d.set_general_discount(5)

    d.clear_campaign()
    assert d.items == []
    d.set_general_discount(5)
    assert d.general_discount_percent == Decimal("5")


def test_unsupported_currency_rejected():
    with pytest.raises(ValidationError):
        ProposalDraft(currency="GBP")


def test_monthly_payment_schedule_clamps_month_end():
    rows = payment_schedule(Decimal("240"), 3, date(2025, 1, 31))
    assert rows == [
        (1, date(2025, 1, 31), Decimal("240")),
        (2, date(2025, 2, 28), Decimal("240")),
        (3, date(2025, 3, 31), Decimal("240")),
    ]
    assert payment_schedule(Decimal("240"), 0, date(2025, 1, 31)) == []
    assert payment_schedule(Decimal("240"), 3, None) == []
