# medsales/api/proposals.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .deps import get_db, get_current_user, get_rate_provider, CurrentUser
from ..core.errors import FetchError, PermissionDenied, ValidationError
from ..models import Clinic, Product, Proposal
from ..services import scoping, submission, workflow
from ..services.calculator import ProposalDraft, ProposalItem, Totals, make_item, payment_schedule
from ..services.campaigns import CampaignExpansion, select_campaign
from ..services.currency import RateProvider

router = APIRouter(prefix="/proposals", tags=["proposals"])


# ---------------------------
# Pydantic Şemalar
# ---------------------------

class ItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, gt=0)
    # Verilmezse ürünün kendi fiyatı kullanılır
    unit_price: Optional[Decimal] = Field(None, ge=0)
    excess_percentage: Decimal = Field(Decimal("0"), ge=0)


class DraftIn(BaseModel):
    currency: str = Field("TRY", min_length=3, max_length=3)
    general_discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    down_payment_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    installment_count: int = Field(1, ge=0)
    campaign_id: Optional[int] = None
    items: List[ItemIn] = Field(default_factory=list)


class SubmitIn(DraftIn):
    clinic_id: Optional[int] = None
    first_payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    submission_token: Optional[str] = Field(None, max_length=64)


class RepairIn(BaseModel):
    items: List[ItemIn]


class NoteIn(BaseModel):
    note: Optional[str] = None


class AdvanceIn(BaseModel):
    status: Optional[str] = None


class ItemOut(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    product_currency: Optional[str] = None
    excess_percentage: Decimal
    effective_quantity: Decimal
    total: Decimal
    original_total: Decimal


class TotalsOut(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    total_after_discount: Decimal
    down_payment_amount: Decimal
    remaining_amount: Decimal
    installment_amount: Decimal
    total_quantity_with_bonus: Decimal


class PreviewOut(BaseModel):
    currency: str
    campaign_id: Optional[int] = None
    discount_locked: bool = False
    general_discount_percent: Decimal
    down_payment_percent: Decimal
    installment_count: int
    items: List[ItemOut]
    totals: TotalsOut
    warnings: List[str] = Field(default_factory=list)


class ProposalItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    excess_percentage: Decimal
    excess: bool


class ProposalOut(BaseModel):
    id: int
    clinic_id: int
    clinic_name: Optional[str] = None
    user_id: int
    campaign_id: Optional[int] = None
    currency: str
    discount: Decimal
    total_amount: Decimal
    installment_count: int
    installment_amount: Decimal
    down_payment_percentage: Decimal
    down_payment: Decimal
    first_payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    status: str
    notes: Optional[str] = None
    needs_item_repair: bool = False
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[ProposalItemOut] = Field(default_factory=list)


class SubmitOut(BaseModel):
    proposal: ProposalOut
    duplicate: bool = False
    warning: Optional[str] = None
    failed_items: List[int] = Field(default_factory=list)


class ScheduleRow(BaseModel):
    no: int
    due_date: date
    amount: Decimal


# ---------------------------
# Yardımcılar
# ---------------------------

def _item_out(it: ProposalItem) -> ItemOut:
    return ItemOut(
        product_id=it.product_id,
        product_name=it.product_name,
        quantity=it.quantity,
        unit_price=it.unit_price,
        product_currency=it.product_currency,
        excess_percentage=it.excess_percentage,
        effective_quantity=it.effective_quantity,
        total=it.total,
        original_total=it.original_total,
    )


def _totals_out(t: Totals) -> TotalsOut:
    return TotalsOut(
        subtotal=t.subtotal,
        discount_amount=t.discount_amount,
        total_after_discount=t.total_after_discount,
        down_payment_amount=t.down_payment_amount,
        remaining_amount=t.remaining_amount,
        installment_amount=t.installment_amount,
        total_quantity_with_bonus=t.total_quantity_with_bonus,
    )


def _serialize(p: Proposal) -> ProposalOut:
    return ProposalOut.model_validate({
        "id": p.id,
        "clinic_id": p.clinic_id,
        "clinic_name": getattr(getattr(p, "clinic", None), "name", None),
        "user_id": p.user_id,
        "campaign_id": p.campaign_id,
        "currency": p.currency,
        "discount": p.discount,
        "total_amount": p.total_amount,
        "installment_count": p.installment_count,
        "installment_amount": p.installment_amount,
        "down_payment_percentage": p.down_payment_percentage,
        "down_payment": p.down_payment,
        "first_payment_date": p.first_payment_date,
        "payment_method": p.payment_method,
        "status": p.status,
        "notes": p.notes,
        "needs_item_repair": bool(p.needs_item_repair),
        "approved_by": p.approved_by,
        "approved_at": p.approved_at,
        "rejected_by": p.rejected_by,
        "rejected_at": p.rejected_at,
        "created_at": p.created_at,
        "items": [
            {
                "id": r.id,
                "product_id": r.product_id,
                "product_name": getattr(getattr(r, "product", None), "name", None),
                "quantity": r.quantity,
                "unit_price": r.unit_price,
                "excess_percentage": r.excess_percentage,
                "excess": bool(r.excess),
            }
            for r in (p.items or [])
        ],
    })


def _load_products(db: Session, ids: List[int]) -> Dict[int, Product]:
    if not ids:
        return {}
    try:
        rows = db.execute(
            select(Product).where(Product.id.in_(sorted(set(ids))), Product.status == "active")
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Products could not be loaded: {e}") from e
    found = {p.id: p for p in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ValidationError(f"Unknown or inactive product: {missing[0]}")
    return found


def _build_items(
    db: Session,
    body_items: List[ItemIn],
    currency: str,
    provider: RateProvider,
) -> List[ProposalItem]:
    products = _load_products(db, [i.product_id for i in body_items])
    out: List[ProposalItem] = []
    for i in body_items:
        p = products[i.product_id]
        price = i.unit_price if i.unit_price is not None else (p.price or 0)
        out.append(
            make_item(
                product_id=p.id,
                product_name=p.name,
                quantity=i.quantity,
                unit_price=price,
                product_currency=p.currency,
                proposal_currency=currency,
                excess_percentage=i.excess_percentage,
                provider=provider,
            )
        )
    return out


def _build_draft(
    db: Session, body: DraftIn, provider: RateProvider
) -> Tuple[ProposalDraft, Optional[CampaignExpansion]]:
    draft = ProposalDraft(
        currency=body.currency,
        general_discount_percent=body.general_discount_percent,
        down_payment_percent=body.down_payment_percent,
        installment_count=body.installment_count,
        provider=provider,
    )
    if body.campaign_id is not None:
        # Kampanya seçimi manuel kalemlerin ve iskontonun yerine geçer
        return draft, select_campaign(db, draft, body.campaign_id)
    draft.items = _build_items(db, body.items, draft.currency, provider)
    return draft, None


def _get_visible(db: Session, proposal_id: int, current: CurrentUser) -> Proposal:
    p = db.get(Proposal, proposal_id)
    if not p or not scoping.can_view(db, current, "proposals", p):
        raise HTTPException(status_code=404, detail="Proposal not found")
    return p


def _guard_owner_or_manager(p: Proposal, current: CurrentUser) -> None:
    if workflow.can_manage(current) or p.user_id == current.id:
        return
    raise PermissionDenied("Only the creator, admin or manager can modify this proposal")


def _ensure_clinic_visible(db: Session, clinic_id: int, current: CurrentUser) -> Clinic:
    clinic = db.get(Clinic, clinic_id)
    if not clinic or clinic.status != "active" or not scoping.can_view(db, current, "clinics", clinic):
        raise ValidationError("Selected clinic is not available")
    return clinic


# ---------------------------
# Endpoints
# ---------------------------

@router.post(
    "/preview",
    response_model=PreviewOut,
    summary="Compute proposal line items and totals without saving",
)
def preview_proposal(
    body: DraftIn,
    db: Session = Depends(get_db),
    provider: RateProvider = Depends(get_rate_provider),
    current: CurrentUser = Depends(get_current_user),
):
    draft, expansion = _build_draft(db, body, provider)
    warnings = [expansion.error] if expansion is not None and not expansion.ok else []
    return PreviewOut(
        currency=draft.currency,
        campaign_id=draft.campaign_id,
        discount_locked=draft.discount_locked,
        general_discount_percent=draft.general_discount_percent,
        down_payment_percent=draft.down_payment_percent,
        installment_count=draft.installment_count,
        items=[_item_out(it) for it in draft.items],
        totals=_totals_out(draft.totals),
        warnings=warnings,
    )


@router.post(
    "/",
    response_model=SubmitOut,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a proposal (header + line items)",
)
def create_proposal(
    body: SubmitIn,
    response: Response,
    db: Session = Depends(get_db),
    provider: RateProvider = Depends(get_rate_provider),
    current: CurrentUser = Depends(get_current_user),
):
    # Kampanyasız ve kalemsiz gönderim DB'ye hiç gitmeden reddedilir
    if body.clinic_id is None:
        raise ValidationError("Please select a clinic")
    if body.campaign_id is None and not body.items:
        raise ValidationError("Please add at least one product")

    draft, expansion = _build_draft(db, body, provider)
    if expansion is not None and not expansion.ok:
        # Kampanya yok/pasif → 422; okuma hatası → 503
        if expansion.invalid_input:
            raise ValidationError(expansion.error)
        raise FetchError(expansion.error)
    _ensure_clinic_visible(db, body.clinic_id, current)

    header = submission.ProposalHeader(
        clinic_id=body.clinic_id,
        user_id=current.id,
        currency=draft.currency,
        general_discount_percent=draft.general_discount_percent,
        down_payment_percent=draft.down_payment_percent,
        installment_count=draft.installment_count,
        first_payment_date=body.first_payment_date,
        payment_method=body.payment_method,
        campaign_id=draft.campaign_id,
        notes=body.notes or "",
        submission_token=body.submission_token,
    )
    result = submission.submit_proposal(db, header, draft.items, provider=provider)
    if result.duplicate:
        response.status_code = status.HTTP_200_OK

    return SubmitOut(
        proposal=_serialize(result.proposal),
        duplicate=result.duplicate,
        warning=result.warning.message if result.warning else None,
        failed_items=result.failed_items,
    )


@router.get(
    "/",
    summary="List proposals visible to the current user",
)
def list_proposals(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    status_filter: Optional[str] = Query(None, alias="status"),
    clinic_id: Optional[int] = None,
):
    stmt = scoping.scoped_select(db, current, "proposals")
    if status_filter:
        stmt = stmt.where(Proposal.status == status_filter)
    if clinic_id:
        stmt = stmt.where(Proposal.clinic_id == clinic_id)

    try:
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = db.execute(
            stmt.order_by(Proposal.created_at.desc(), Proposal.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Proposals could not be loaded: {e}") from e

    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "items": [_serialize(r) for r in rows],
    }


@router.get("/{proposal_id}", response_model=ProposalOut, summary="Get proposal with items")
def get_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return _serialize(_get_visible(db, proposal_id, current))


@router.get(
    "/{proposal_id}/schedule",
    response_model=List[ScheduleRow],
    summary="Installment due dates",
)
def get_schedule(
    proposal_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    p = _get_visible(db, proposal_id, current)
    rows = payment_schedule(p.installment_amount, p.installment_count, p.first_payment_date)
    return [ScheduleRow(no=n, due_date=d, amount=a) for n, d, a in rows]


@router.post(
    "/{proposal_id}/items/repair",
    response_model=SubmitOut,
    summary="Retry inserting line items of a partially written proposal",
)
def repair_proposal_items(
    proposal_id: int,
    body: RepairIn,
    db: Session = Depends(get_db),
    provider: RateProvider = Depends(get_rate_provider),
    current: CurrentUser = Depends(get_current_user),
):
    p = _get_visible(db, proposal_id, current)
    _guard_owner_or_manager(p, current)
    items = _build_items(db, body.items, p.currency, provider)
    result = submission.repair_items(db, p, items)
    return SubmitOut(
        proposal=_serialize(result.proposal),
        warning=result.warning.message if result.warning else None,
        failed_items=result.failed_items,
    )


@router.delete(
    "/{proposal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Discard a pending proposal waiting for item repair",
)
def discard_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    p = _get_visible(db, proposal_id, current)
    _guard_owner_or_manager(p, current)
    submission.discard_proposal(db, p)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{proposal_id}/approve", response_model=ProposalOut, summary="Approve a pending proposal")
def approve_proposal(
    proposal_id: int,
    body: NoteIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    p = _get_visible(db, proposal_id, current)
    return _serialize(workflow.approve(db, p, current, body.note))


@router.post("/{proposal_id}/reject", response_model=ProposalOut, summary="Reject a pending proposal")
def reject_proposal(
    proposal_id: int,
    body: NoteIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    p = _get_visible(db, proposal_id, current)
    return _serialize(workflow.reject(db, p, current, body.note))


@router.post("/{proposal_id}/advance", response_model=ProposalOut, summary="Move proposal to the next process step")
def advance_proposal(
    proposal_id: int,
    body: AdvanceIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    p = _get_visible(db, proposal_id, current)
    return _serialize(workflow.advance(db, p, current, body.status))
