# medsales/services/calculator.py
from __future__ import annotations

import calendar
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from ..core.errors import ValidationError
from .currency import Number, RateProvider, convert, is_supported, to_decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ProposalItem:
    """
    Gönderim öncesi, bellekteki teklif kalemi.
      original_total = quantity * unit_price           (ürün para birimi)
      total          = convert(original_total, ...)    (teklif para birimi)
    """

    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    product_currency: str
    excess_percentage: Decimal
    total: Decimal
    original_total: Decimal

    @property
    def effective_quantity(self) -> Decimal:
        # Mal fazlası parasal toplamlara girmez
        qty = Decimal(self.quantity)
        return qty + qty * self.excess_percentage / HUNDRED

    @property
    def has_excess(self) -> bool:
        return self.excess_percentage > 0


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    total_after_discount: Decimal
    down_payment_amount: Decimal
    remaining_amount: Decimal
    installment_amount: Decimal
    total_quantity_with_bonus: Decimal


def _non_negative(name: str, value: Number) -> Decimal:
    try:
        d = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if not d.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    if d < 0:
        raise ValidationError(f"{name} must not be negative")
    return d


def _percentage(name: str, value: Number) -> Decimal:
    d = _non_negative(name, value)
    if d > HUNDRED:
        raise ValidationError(f"{name} must be between 0 and 100")
    return d


def _currency(value: Optional[str]) -> str:
    if not is_supported(value):
        raise ValidationError(f"Unsupported currency: {value!r}")
    return value.upper()


def make_item(
    product_id: int,
    product_name: str,
    quantity: Number,
    unit_price: Number,
    product_currency: Optional[str],
    proposal_currency: str,
    excess_percentage: Number = 0,
    provider: Optional[RateProvider] = None,
    require_positive_price: bool = True,
) -> ProposalItem:
    """Girişi doğrular ve kalemi teklif para biriminde hesaplar."""
    qty = _non_negative("quantity", quantity)
    if qty == 0 or qty != qty.to_integral_value():
        raise ValidationError("quantity must be a positive whole number")
    price = _non_negative("unit_price", unit_price)
    if require_positive_price and price == 0:
        raise ValidationError("unit_price must be greater than 0")
    excess = _non_negative("excess_percentage", excess_percentage)

    # Ürün para birimi bilinmiyorsa çeviri yapılmaz (convert uyarı loglar)
    src = product_currency.upper() if product_currency else None
    original_total = qty * price
    total = convert(original_total, src, proposal_currency, provider)
    return ProposalItem(
        product_id=int(product_id),
        product_name=product_name,
        quantity=int(qty),
        unit_price=price,
        product_currency=src,
        excess_percentage=excess,
        total=total,
        original_total=original_total,
    )


def compute_totals(
    items: List[ProposalItem],
    general_discount_percent: Number = 0,
    down_payment_percent: Number = 0,
    installment_count: int = 1,
) -> Totals:
    discount_pct = _percentage("general_discount_percent", general_discount_percent)
    down_pct = _percentage("down_payment_percent", down_payment_percent)
    if installment_count is None or int(installment_count) < 0:
        raise ValidationError("installment_count must not be negative")
    count = int(installment_count)

    subtotal = sum((it.total for it in items), ZERO)
    discount_amount = subtotal * discount_pct / HUNDRED
    total_after_discount = subtotal - discount_amount
    down_payment_amount = total_after_discount * down_pct / HUNDRED
    remaining_amount = total_after_discount - down_payment_amount
    installment_amount = remaining_amount / count if count > 0 else ZERO

    return Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total_after_discount=total_after_discount,
        down_payment_amount=down_payment_amount,
        remaining_amount=remaining_amount,
        installment_amount=installment_amount,
        total_quantity_with_bonus=sum((it.effective_quantity for it in items), ZERO),
    )


def _add_months(d: date, months: int) -> date:
    idx = d.year * 12 + (d.month - 1) + months
    y, m = idx // 12, idx % 12 + 1
    last = calendar.monthrange(y, m)[1]
    return date(y, m, min(d.day, last))


@dataclass
class ProposalDraft:
    """
    Teklif formunun hesap durumu. Her değişiklikte toplamlar baştan hesaplanır.
    Kampanya seçiliyken genel iskonto kampanyadan gelir ve kilitlidir.
    """

    currency: str = "TRY"
    general_discount_percent: Decimal = ZERO
    down_payment_percent: Decimal = ZERO
    installment_count: int = 1
    items: List[ProposalItem] = field(default_factory=list)
    campaign_id: Optional[int] = None
    discount_locked: bool = False
    provider: Optional[RateProvider] = None

    def __post_init__(self):
        self.currency = _currency(self.currency)
        self.general_discount_percent = _percentage("general_discount_percent", self.general_discount_percent)
        self.down_payment_percent = _percentage("down_payment_percent", self.down_payment_percent)
        self.set_installment_count(self.installment_count)

    # ---- items ----
    def add_item(
        self,
        product_id: int,
        product_name: str,
        quantity: Number,
        unit_price: Number,
        product_currency: Optional[str],
        excess_percentage: Number = 0,
    ) -> ProposalItem:
        item = make_item(
            product_id, product_name, quantity, unit_price, product_currency,
            self.currency, excess_percentage, provider=self.provider,
        )
        self.items.append(item)
        return item

    def update_item(self, index: int, **changes) -> ProposalItem:
        old = self._item_at(index)
        data = {
            "product_id": old.product_id,
            "product_name": old.product_name,
            "quantity": old.quantity,
            "unit_price": old.unit_price,
            "product_currency": old.product_currency,
            "excess_percentage": old.excess_percentage,
        }
        unknown = set(changes) - set(data)
        if unknown:
            raise ValidationError(f"Unknown item fields: {', '.join(sorted(unknown))}")
        data.update(changes)
        item = make_item(proposal_currency=self.currency, provider=self.provider, **data)
        self.items[index] = item
        return item

    def remove_item(self, index: int) -> ProposalItem:
        self._item_at(index)
        return self.items.pop(index)

    def _item_at(self, index: int) -> ProposalItem:
        if not (0 <= index < len(self.items)):
            raise ValidationError(f"No item at index {index}")
        return self.items[index]

    # ---- parameters ----
    def set_currency(self, currency: str) -> None:
        """Tüm kalem toplamları original_total'dan yeniden hesaplanır (önceki total'dan değil)."""
        self.currency = _currency(currency)
        self.items = [
            replace(it, total=convert(it.original_total, it.product_currency, self.currency, self.provider))
            for it in self.items
        ]

    def set_general_discount(self, percent: Number) -> None:
        if self.discount_locked:
            raise ValidationError("Discount is set by the selected campaign")
        self.general_discount_percent = _percentage("general_discount_percent", percent)

    def set_down_payment(self, percent: Number) -> None:
        self.down_payment_percent = _percentage("down_payment_percent", percent)

    def set_installment_count(self, count: int) -> None:
        try:
            value = int(count)
        except (TypeError, ValueError):
            raise ValidationError("installment_count must be an integer")
        if value < 0:
            raise ValidationError("installment_count must not be negative")
        self.installment_count = value

    # ---- campaigns ----
    def apply_campaign(self, campaign_id: int, items: List[ProposalItem], discount_percentage: Number) -> None:
        """Kampanya kalemleri mevcut listenin YERİNE geçer; iskonto kampanyadan gelir."""
        self.items = list(items)
        self.campaign_id = campaign_id
        self.general_discount_percent = _percentage("general_discount_percent", discount_percentage)
        self.discount_locked = True

    def clear_campaign(self) -> None:
        self.items = []
        self.campaign_id = None
        self.discount_locked = False

    # ---- derived ----
    @property
    def totals(self) -> Totals:
        return compute_totals(
            self.items,
            self.general_discount_percent,
            self.down_payment_percent,
            self.installment_count,
        )

    def payment_schedule(self, first_payment_date: Optional[date]) -> List[Tuple[int, date, Decimal]]:
        return payment_schedule(self.totals.installment_amount, self.installment_count, first_payment_date)


def payment_schedule(
    installment_amount: Number,
    installment_count: int,
    first_payment_date: Optional[date],
) -> List[Tuple[int, date, Decimal]]:
    """(sıra, vade tarihi, tutar) listesi; taksitler aylık aralıkla."""
    if not first_payment_date or installment_count <= 0:
        return []
    amount = to_decimal(installment_amount)
    return [(i + 1, _add_months(first_payment_date, i), amount) for i in range(int(installment_count))]
