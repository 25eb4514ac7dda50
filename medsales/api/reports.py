# medsales/api/reports.py
from __future__ import annotations

from datetime import date as date_type, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .deps import get_db, get_current_user, CurrentUser
from ..core.errors import FetchError, ValidationError, WriteError
from ..models import Clinic, Product, SurgeryReport, VisitReport
from ..services import scoping

surgery_router = APIRouter(prefix="/surgery-reports", tags=["reports"])
visit_router = APIRouter(prefix="/visit-reports", tags=["reports"])

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# ---------------------------
# Pydantic Şemalar
# ---------------------------

class SurgeryReportCreate(BaseModel):
    clinic_id: int
    product_id: Optional[int] = None
    date: date_type
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    patient_name: Optional[str] = None
    surgery_type: Optional[str] = None
    notes: Optional[str] = None
    status: str = Field("scheduled", pattern="^(completed|scheduled|cancelled)$")


class SurgeryReportOut(BaseModel):
    id: int
    user_id: int
    clinic_id: int
    clinic_name: Optional[str] = None
    product_id: Optional[int] = None
    date: date_type
    time: Optional[str] = None
    patient_name: Optional[str] = None
    surgery_type: Optional[str] = None
    notes: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VisitReportCreate(BaseModel):
    clinic_id: int
    subject: str = Field(..., min_length=1)
    date: date_type
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    follow_up_required: bool = False
    follow_up_date: Optional[date_type] = None


class VisitReportOut(BaseModel):
    id: int
    user_id: int
    clinic_id: int
    clinic_name: Optional[str] = None
    subject: str
    date: date_type
    time: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    follow_up_required: bool
    follow_up_date: Optional[date_type] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------------------------
# Yardımcılar
# ---------------------------

def _ensure_clinic_visible(db: Session, clinic_id: int, current: CurrentUser) -> Clinic:
    clinic = db.get(Clinic, clinic_id)
    if not clinic or clinic.status != "active" or not scoping.can_view(db, current, "clinics", clinic):
        raise ValidationError("Selected clinic is not available")
    return clinic


def _list(db: Session, current: CurrentUser, resource: str, model, clinic_id, date_from, date_to, page, size):
    stmt = scoping.scoped_select(db, current, resource)
    if clinic_id:
        stmt = stmt.where(model.clinic_id == clinic_id)
    if date_from:
        stmt = stmt.where(model.date >= date_from)
    if date_to:
        stmt = stmt.where(model.date <= date_to)
    try:
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = db.execute(
            stmt.order_by(model.date.desc(), model.id.desc()).offset((page - 1) * size).limit(size)
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Reports could not be loaded: {e}") from e
    return total, rows


def _save(db: Session, row):
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        raise WriteError(f"Report could not be saved: {e}") from e
    return row


def _with_clinic(out_cls, row):
    out = out_cls.model_validate(row)
    out.clinic_name = getattr(getattr(row, "clinic", None), "name", None)
    return out


# ---------------------------
# Surgery reports
# ---------------------------

@surgery_router.get("/", summary="Surgery reports visible to the current user")
def list_surgery_reports(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    clinic_id: Optional[int] = None,
    date_from: Optional[date_type] = None,
    date_to: Optional[date_type] = None,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
):
    total, rows = _list(db, current, "surgery_reports", SurgeryReport, clinic_id, date_from, date_to, page, size)
    return {"total": total, "page": page, "size": size, "items": [_with_clinic(SurgeryReportOut, r) for r in rows]}


@surgery_router.post("/", response_model=SurgeryReportOut, status_code=status.HTTP_201_CREATED)
def create_surgery_report(
    body: SurgeryReportCreate,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    _ensure_clinic_visible(db, body.clinic_id, current)
    if body.product_id is not None and db.get(Product, body.product_id) is None:
        raise ValidationError(f"Unknown product: {body.product_id}")

    row = SurgeryReport(user_id=current.id, **body.model_dump())
    return _with_clinic(SurgeryReportOut, _save(db, row))


# ---------------------------
# Visit reports
# ---------------------------

@visit_router.get("/", summary="Visit reports visible to the current user")
def list_visit_reports(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    clinic_id: Optional[int] = None,
    date_from: Optional[date_type] = None,
    date_to: Optional[date_type] = None,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
):
    total, rows = _list(db, current, "visit_reports", VisitReport, clinic_id, date_from, date_to, page, size)
    return {"total": total, "page": page, "size": size, "items": [_with_clinic(VisitReportOut, r) for r in rows]}


@visit_router.post("/", response_model=VisitReportOut, status_code=status.HTTP_201_CREATED)
def create_visit_report(
    body: VisitReportCreate,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    _ensure_clinic_visible(db, body.clinic_id, current)
    if body.follow_up_required and body.follow_up_date is None:
        raise ValidationError("Follow-up date is required when a follow-up is planned")

    data = body.model_dump()
    if not body.follow_up_required:
        data["follow_up_date"] = None
    row = VisitReport(user_id=current.id, **data)
    return _with_clinic(VisitReportOut, _save(db, row))
