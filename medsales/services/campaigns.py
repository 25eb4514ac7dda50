# medsales/services/campaigns.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import FetchError, ValidationError
from ..models import Campaign, CampaignItem
from .calculator import ProposalDraft, ProposalItem, make_item
from .currency import RateProvider, is_supported

logger = logging.getLogger(__name__)


@dataclass
class CampaignExpansion:
    campaign_id: int
    currency: str
    discount_percentage: Decimal = Decimal("0")
    items: List[ProposalItem] = field(default_factory=list)
    error: Optional[str] = None
    # True: istemci girdisi (kampanya yok/pasif, para birimi); False: okuma hatası
    invalid_input: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def _load_campaign(db: Session, campaign_id: int) -> Tuple[Campaign, List[CampaignItem]]:
    try:
        campaign = db.execute(
            select(Campaign).where(Campaign.id == campaign_id)
        ).scalars().first()
        if campaign is None:
            raise ValidationError(f"Campaign {campaign_id} not found")
        if campaign.status != "active":
            raise ValidationError(f"Campaign {campaign_id} is not active")

        rows = db.execute(
            select(CampaignItem)
            .where(CampaignItem.campaign_id == campaign_id)
            .order_by(CampaignItem.id.asc())
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Campaign items could not be loaded: {e}") from e

    return campaign, rows


def expand_campaign(
    db: Session,
    campaign_id: int,
    proposal_currency: str,
    provider: Optional[RateProvider] = None,
) -> CampaignExpansion:
    """
    Kampanyanın sabit ürün setini teklif kalemlerine çevirir.

    Hata olursa (okuma hatası, kampanya yok/pasif, ürünü silinmiş kalem)
    kalem listesi BOŞ döner ve hata mesajı `error` alanında taşınır; kısmi
    liste asla dönmez.
    """
    currency = (proposal_currency or "").upper()
    result = CampaignExpansion(campaign_id=campaign_id, currency=currency)
    loaded = False
    try:
        if not is_supported(currency):
            raise ValidationError(f"Unsupported currency: {proposal_currency!r}")
        campaign, rows = _load_campaign(db, campaign_id)
        loaded = True
        items: List[ProposalItem] = []
        for row in rows:
            product = row.product
            if product is None:
                raise FetchError(f"Campaign item {row.id} references a missing product")

            quantity = row.quantity or 1
            unit_price = row.unit_price if row.unit_price is not None else (product.price or 0)
            items.append(
                make_item(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=quantity,
                    unit_price=unit_price,
                    product_currency=product.currency or "TRY",
                    proposal_currency=currency,
                    excess_percentage=row.excess_percentage or 0,
                    provider=provider,
                    require_positive_price=False,
                )
            )
    except (FetchError, ValidationError) as e:
        logger.error("Campaign %s expansion failed: %s", campaign_id, e.message)
        result.error = e.message
        # Kampanya verisindeki bozuk kalem istemci hatası sayılmaz
        result.invalid_input = isinstance(e, ValidationError) and not loaded
        return result

    result.items = items
    result.discount_percentage = Decimal(str(campaign.discount_percentage or 0))
    logger.info("Campaign %s expanded into %d items (%s)", campaign_id, len(items), currency)
    return result


def select_campaign(
    db: Session,
    draft: ProposalDraft,
    campaign_id: Optional[int],
) -> CampaignExpansion:
    """
    Taslakta kampanya seçimi. None → kampanya kaldırılır ve kalemler boşalır.
    Başarısız genişletmede taslak da boş listeyle kalır; hata çağırana döner.
    """
    if campaign_id is None:
        draft.clear_campaign()
        return CampaignExpansion(campaign_id=0, currency=draft.currency)

    expansion = expand_campaign(db, campaign_id, draft.currency, draft.provider)
    if not expansion.ok:
        draft.clear_campaign()
        return expansion
    draft.apply_campaign(campaign_id, expansion.items, expansion.discount_percentage)
    return expansion
