# tests/test_campaigns.py
from decimal import Decimal

from medsales.services.calculator import ProposalDraft
from medsales.services.campaigns import expand_campaign, select_campaign


def test_expansion_uses_product_price_when_item_has_none(db):
    res = expand_campaign(db, 1, "TRY")
    assert res.ok
    assert [it.product_id for it in res.items] == [1, 3]
    plate, cage = res.items
    assert plate.quantity == 2
    assert plate.unit_price == Decimal("100")
    assert plate.total == Decimal("7584.00")
    assert cage.unit_price == Decimal("900")
    assert cage.effective_quantity == Decimal("1.1")
    assert res.discount_percentage == Decimal("15")


def test_selecting_campaign_replaces_manual_items_and_sets_discount(db):
    d = ProposalDraft(currency="TRY", general_discount_percent=3)
    d.add_item(2, "Bone Screw", 4, 50, "EUR")
    d.add_item(3, "Spinal Cage", 1, 1000, "TRY")

    res = select_campaign(db, d, 1)

    assert res.ok
    assert [it.product_id for it in d.items] == [1, 3]
    assert d.general_discount_percent == Decimal("15")
    assert d.discount_locked
    assert d.campaign_id == 1


def test_inactive_or_unknown_campaign_leaves_empty_list(db):
    d = ProposalDraft()
    d.add_item(3, "Spinal Cage", 1, 1000, "TRY")
    res = select_campaign(db, d, 2)
    assert not res.ok
    assert d.items == []
    assert d.campaign_id is None

    assert expand_campaign(db, 404, "TRY").items == []


def test_missing_product_never_yields_partial_list(db):
    res = expand_campaign(db, 3, "USD")
    assert not res.ok
    assert res.items == []
    assert "missing product" in res.error


def test_unsupported_currency_reports_error(db):
    res = expand_campaign(db, 1, "GBP")
    assert res.items == []
    assert "Unsupported currency" in res.error


def test_clearing_campaign_unlocks_discount(db):
    d = ProposalDraft()
    select_campaign(db, d, 1)
    select_campaign(db, d, None)
    assert d.items == []
    assert not d.discount_locked


def test_client_errors_are_told_apart_from_broken_campaign_data(db):
    assert expand_campaign(db, 2, "TRY").invalid_input is True
    assert expand_campaign(db, 404, "TRY").invalid_input is True
    assert expand_campaign(db, 1, "GBP").invalid_input is True
    # ürünü silinmiş kalem: veri hatası
    assert expand_campaign(db, 3, "TRY").invalid_input is False
