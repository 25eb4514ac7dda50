# medsales/services/submission.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import FetchError, PartialWriteWarning, ValidationError, WriteError
from ..models import Proposal, ProposalItemRow
from .calculator import ProposalItem, compute_totals
from .currency import RateProvider, currency_snapshot, is_supported

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Numeric(18, 4) / Numeric(9, 4) kolon ölçeği
PRICE_STEP = Decimal("0.0001")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class ProposalHeader:
    clinic_id: Optional[int]
    user_id: int
    currency: str = "TRY"
    general_discount_percent: Decimal = Decimal("0")
    down_payment_percent: Decimal = Decimal("0")
    installment_count: int = 1
    first_payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    campaign_id: Optional[int] = None
    notes: str = ""
    # İstemci üretir; aynı token ile ikinci gönderim yeni teklif açmaz
    submission_token: Optional[str] = None


@dataclass
class SubmissionResult:
    proposal: Proposal
    failed_items: List[int] = field(default_factory=list)
    duplicate: bool = False
    warning: Optional[PartialWriteWarning] = None

    @property
    def complete(self) -> bool:
        return not self.failed_items


def validate_submission(header: ProposalHeader, items: Sequence[ProposalItem]) -> None:
    """Ağ/DB çağrısı yapmadan önce zorunlu alanları kontrol eder."""
    if header.clinic_id is None:
        raise ValidationError("Please select a clinic")
    if not items:
        raise ValidationError("Please add at least one product")
    if not is_supported(header.currency):
        raise ValidationError(f"Unsupported currency: {header.currency!r}")


def find_by_token(db: Session, token: str) -> Optional[Proposal]:
    try:
        return db.execute(
            select(Proposal).where(Proposal.submission_token == token)
        ).scalars().first()
    except SQLAlchemyError as e:
        raise FetchError(f"Proposal lookup failed: {e}") from e


def _own_duplicate(existing: Proposal, header: ProposalHeader) -> SubmissionResult:
    # Token başka kullanıcıya aitse teklif asla geri verilmez
    if existing.user_id != header.user_id:
        logger.warning(
            "Submission token %s reused by user %s (owner %s)",
            header.submission_token, header.user_id, existing.user_id,
        )
        raise ValidationError("Submission token is already in use")
    logger.info("Duplicate submission token %s -> proposal %s", header.submission_token, existing.id)
    return SubmissionResult(proposal=existing, duplicate=True)


def _insert_item(db: Session, proposal_id: int, item: ProposalItem) -> ProposalItemRow:
    row = ProposalItemRow(
        proposal_id=proposal_id,
        product_id=item.product_id,
        quantity=item.quantity,
        unit_price=item.unit_price,
        excess_percentage=item.excess_percentage,
        excess=item.has_excess,
    )
    db.add(row)
    db.commit()
    return row


def _insert_items(db: Session, proposal_id: int, items: Sequence[ProposalItem]) -> List[int]:
    """Her kalem bağımsız yazılır; başarısız olanların index'leri döner."""
    failed: List[int] = []
    for idx, item in enumerate(items):
        try:
            _insert_item(db, proposal_id, item)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Proposal %s item #%d (product %s) insert failed: %s", proposal_id, idx, item.product_id, e)
            failed.append(idx)
    return failed


def _mark_repair(db: Session, proposal: Proposal, needed: bool) -> None:
    try:
        proposal.needs_item_repair = needed
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Proposal %s repair flag could not be saved: %s", proposal.id, e)


def submit_proposal(
    db: Session,
    header: ProposalHeader,
    items: Sequence[ProposalItem],
    provider: Optional[RateProvider] = None,
    today: Optional[date] = None,
) -> SubmissionResult:
    """
    İki adımlı gönderim:
      1) doğrulama (DB çağrısı yok)
      2) başlık insert (status=pending), id alınır
      3) kalemler proposal_id ile tek tek insert

    Kalem adımı kısmen başarısız olursa başlık silinmez; needs_item_repair
    işaretlenir ve sonuç PartialWriteWarning taşır.
    """
    validate_submission(header, items)
    currency = header.currency.upper()
    totals = compute_totals(
        list(items),
        header.general_discount_percent,
        header.down_payment_percent,
        header.installment_count,
    )

    if header.submission_token:
        existing = find_by_token(db, header.submission_token)
        if existing is not None:
            return _own_duplicate(existing, header)

    notes = currency_snapshot(currency, provider, today) + (header.notes or "")

    proposal = Proposal(
        clinic_id=header.clinic_id,
        user_id=header.user_id,
        campaign_id=header.campaign_id,
        currency=currency,
        discount=header.general_discount_percent,
        total_amount=_money(totals.total_after_discount),
        installment_count=header.installment_count,
        installment_amount=_money(totals.installment_amount),
        down_payment_percentage=header.down_payment_percent,
        down_payment=_money(totals.down_payment_amount),
        first_payment_date=header.first_payment_date,
        payment_method=header.payment_method,
        status="pending",
        notes=notes,
        submission_token=header.submission_token,
        needs_item_repair=False,
    )
    try:
        db.add(proposal)
        db.commit()
        db.refresh(proposal)
    except IntegrityError as e:
        db.rollback()
        # Aynı token ile eşzamanlı gönderim: kazanan kaydı döndür
        if header.submission_token:
            existing = find_by_token(db, header.submission_token)
            if existing is not None:
                return _own_duplicate(existing, header)
        raise WriteError(f"Proposal could not be created: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise WriteError(f"Proposal could not be created: {e}") from e

    failed = _insert_items(db, proposal.id, items)
    if not failed:
        logger.info("Proposal %s created with %d items", proposal.id, len(items))
        return SubmissionResult(proposal=proposal)

    _mark_repair(db, proposal, True)
    warning = PartialWriteWarning(
        "Proposal was created but some products could not be added",
        proposal_id=proposal.id,
        failed_indexes=failed,
    )
    logger.warning("Proposal %s created with %d/%d failed items", proposal.id, len(failed), len(items))
    return SubmissionResult(proposal=proposal, failed_items=failed, warning=warning)


def _item_key(product_id, quantity, unit_price, excess_percentage) -> Tuple[int, int, Decimal, Decimal]:
    return (
        int(product_id),
        int(quantity),
        Decimal(str(unit_price or 0)).quantize(PRICE_STEP),
        Decimal(str(excess_percentage or 0)).quantize(PRICE_STEP),
    )


def _saved_keys(db: Session, proposal_id: int) -> Counter:
    try:
        rows = db.execute(
            select(ProposalItemRow).where(ProposalItemRow.proposal_id == proposal_id)
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Proposal items could not be loaded: {e}") from e
    return Counter(_item_key(r.product_id, r.quantity, r.unit_price, r.excess_percentage) for r in rows)


def _missing_indexes(saved: Counter, items: Sequence[ProposalItem]) -> List[int]:
    """Kayıtlı satırlarla eşleşmeyen kalemlerin index'leri (her satır bir kez eşleşir)."""
    left = Counter(saved)
    missing: List[int] = []
    for idx, it in enumerate(items):
        key = _item_key(it.product_id, it.quantity, it.unit_price, it.excess_percentage)
        if left[key] > 0:
            left[key] -= 1
        else:
            missing.append(idx)
    return missing


def repair_items(db: Session, proposal: Proposal, items: Sequence[ProposalItem]) -> SubmissionResult:
    """
    Kalem adımını tekrar çalıştırır. İstemci tam listeyi gönderebilir:
    zaten kayıtlı kalemler atlanır, sadece eksikler yazılır. Bayrak, listedeki
    her kalemin kayıtlı olduğu DB'den doğrulandıktan sonra kalkar.
    """
    if not proposal.needs_item_repair:
        raise ValidationError("Proposal does not need item repair")
    if not items:
        raise ValidationError("Please add at least one product")

    missing = _missing_indexes(_saved_keys(db, proposal.id), items)
    failed_local = _insert_items(db, proposal.id, [items[i] for i in missing])
    failed = [missing[j] for j in failed_local]

    if not failed:
        failed = _missing_indexes(_saved_keys(db, proposal.id), items)
    if failed:
        warning = PartialWriteWarning(
            "Some products could still not be added",
            proposal_id=proposal.id,
            failed_indexes=failed,
        )
        return SubmissionResult(proposal=proposal, failed_items=failed, warning=warning)

    _mark_repair(db, proposal, False)
    db.refresh(proposal)
    logger.info("Proposal %s items repaired (%d written, %d already saved)",
                proposal.id, len(missing), len(items) - len(missing))
    return SubmissionResult(proposal=proposal)


def discard_proposal(db: Session, proposal: Proposal) -> None:
    """Telafi adımı: onarım bekleyen, hâlâ pending teklifi kalemleriyle siler."""
    if proposal.status != "pending" or not proposal.needs_item_repair:
        raise ValidationError("Only pending proposals waiting for item repair can be discarded")
    try:
        db.delete(proposal)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise WriteError(f"Proposal could not be discarded: {e}") from e
    logger.info("Proposal %s discarded", proposal.id)
