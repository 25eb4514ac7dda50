# medsales/api/catalog.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .deps import get_db, get_current_user, get_rate_provider, CurrentUser
from ..core.errors import FetchError, ValidationError, WriteError
from ..models import Campaign, Clinic, Product
from ..services import scoping
from ..services.campaigns import expand_campaign
from ..services.currency import RateProvider

# Klinik, ürün ve kampanya katalogları tek modülde; üç ayrı router
clinics_router = APIRouter(prefix="/clinics", tags=["clinics"])
products_router = APIRouter(prefix="/products", tags=["products"])
campaigns_router = APIRouter(prefix="/campaigns", tags=["campaigns"])


# ---------------------------
# Pydantic Şemalar
# ---------------------------

class ClinicCreate(BaseModel):
    name: str = Field(..., min_length=1)
    # Verilmezse oluşturanın bölgesi
    region_id: Optional[int] = None
    contact_person: Optional[str] = None
    contact_info: Optional[str] = None
    address: Optional[str] = None


class ClinicOut(BaseModel):
    id: int
    name: str
    region_id: int
    status: str
    contact_person: Optional[str] = None
    contact_info: Optional[str] = None
    address: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


class CampaignOut(BaseModel):
    id: int
    name: str
    discount_percentage: Decimal
    status: str

    class Config:
        from_attributes = True


class ExpandedItemOut(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    product_currency: Optional[str] = None
    excess_percentage: Decimal
    total: Decimal
    original_total: Decimal


class ExpansionOut(BaseModel):
    campaign_id: int
    currency: str
    discount_percentage: Decimal
    items: List[ExpandedItemOut]
    error: Optional[str] = None


# ---------------------------
# Clinics
# ---------------------------

@clinics_router.get("/", response_model=List[ClinicOut], summary="Active clinics visible to the current user")
def list_clinics(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    search: Optional[str] = Query(None, description="Search in clinic name"),
):
    stmt = scoping.scoped_select(db, current, "clinics").where(Clinic.status == "active")
    if search:
        stmt = stmt.where(Clinic.name.ilike(f"%{search}%"))
    try:
        rows = db.execute(stmt.order_by(Clinic.name.asc())).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Clinics could not be loaded: {e}") from e
    return [ClinicOut.model_validate(r) for r in rows]


@clinics_router.post(
    "/",
    response_model=ClinicOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a clinic",
)
def create_clinic(
    body: ClinicCreate,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    region_id = body.region_id if body.region_id is not None else current.region_id
    if region_id is None:
        raise ValidationError("Please select a region for the clinic")
    # Bölgeye bağlı roller başka bölgeye klinik açamaz
    if current.role in ("regional_manager", "field_user") and region_id != current.region_id:
        raise HTTPException(status_code=403, detail="Clinic must be in your own region")

    clinic = Clinic(
        name=body.name.strip(),
        region_id=region_id,
        status="active",
        contact_person=body.contact_person,
        contact_info=body.contact_info,
        address=body.address,
        created_by=current.id,
    )
    try:
        db.add(clinic)
        db.commit()
        db.refresh(clinic)
    except SQLAlchemyError as e:
        db.rollback()
        raise WriteError(f"Clinic could not be created: {e}") from e
    return ClinicOut.model_validate(clinic)


# ---------------------------
# Products
# ---------------------------

@products_router.get("/", response_model=List[ProductOut], summary="Active products")
def list_products(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    try:
        rows = db.execute(
            select(Product).where(Product.status == "active").order_by(Product.name.asc())
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Products could not be loaded: {e}") from e
    return [ProductOut.model_validate(r) for r in rows]


# ---------------------------
# Campaigns
# ---------------------------

@campaigns_router.get("/", response_model=List[CampaignOut], summary="Active campaigns")
def list_campaigns(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    try:
        rows = db.execute(
            select(Campaign).where(Campaign.status == "active").order_by(Campaign.name.asc())
        ).scalars().all()
    except SQLAlchemyError as e:
        raise FetchError(f"Campaigns could not be loaded: {e}") from e
    return [CampaignOut.model_validate(r) for r in rows]


@campaigns_router.get(
    "/{campaign_id}/expand",
    response_model=ExpansionOut,
    summary="Campaign products as proposal line items in the given currency",
)
def expand(
    campaign_id: int,
    currency: str = Query("TRY", min_length=3, max_length=3),
    db: Session = Depends(get_db),
    provider: RateProvider = Depends(get_rate_provider),
    current: CurrentUser = Depends(get_current_user),
):
    res = expand_campaign(db, campaign_id, currency, provider)
    return ExpansionOut(
        campaign_id=res.campaign_id,
        currency=res.currency,
        discount_percentage=res.discount_percentage,
        items=[
            ExpandedItemOut(
                product_id=it.product_id,
                product_name=it.product_name,
                quantity=it.quantity,
                unit_price=it.unit_price,
                product_currency=it.product_currency,
                excess_percentage=it.excess_percentage,
                total=it.total,
                original_total=it.original_total,
            )
            for it in res.items
        ],
        error=res.error,
    )
