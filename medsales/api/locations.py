# medsales/api/locations.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .deps import get_db, get_current_user, require_roles, CurrentUser
from ..core.errors import FetchError, WriteError
from ..models import User, UserLocation
from ..services import scoping

router = APIRouter(prefix="/locations", tags=["locations"])


class LocationIn(BaseModel):
    latitude: Decimal = Field(..., ge=-90, le=90)
    longitude: Decimal = Field(..., ge=-180, le=180)
    event: str = Field("ping", pattern="^(login|logout|ping)$")


class LocationOut(BaseModel):
    id: int
    user_id: int
    latitude: Decimal
    longitude: Decimal
    event: str
    recorded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LatestLocationOut(LocationOut):
    user_name: Optional[str] = None
    region_id: Optional[int] = None


@router.post("/", response_model=LocationOut, status_code=status.HTTP_201_CREATED, summary="Record my position")
def record_location(
    body: LocationIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    row = UserLocation(user_id=current.id, **body.model_dump())
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        raise WriteError(f"Location could not be saved: {e}") from e
    return LocationOut.model_validate(row)


@router.get("/latest", response_model=List[LatestLocationOut], summary="Latest known position per user")
def latest_locations(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_roles("admin", "manager", "regional_manager")),
):
    # Kullanıcı başına en büyük id = en son kayıt
    last_ids = (
        select(func.max(UserLocation.id).label("id"))
        .group_by(UserLocation.user_id)
        .subquery()
    )
    stmt = (
        select(UserLocation, User)
        .join(last_ids, last_ids.c.id == UserLocation.id)
        .join(User, User.id == UserLocation.user_id)
    )
    if current.role == "regional_manager":
        if current.region_id is not None:
            stmt = stmt.where(User.region_id == current.region_id)
        elif scoping.resolve_fallback(None) is scoping.RegionFallback.DENY_ALL:
            return []
        else:
            # allow_all: bölgesiz yönetici sadece kendi konumunu görür
            stmt = stmt.where(User.id == current.id)

    try:
        rows = db.execute(stmt.order_by(UserLocation.recorded_at.desc(), UserLocation.id.desc())).all()
    except SQLAlchemyError as e:
        raise FetchError(f"Locations could not be loaded: {e}") from e

    out: List[LatestLocationOut] = []
    for loc, user in rows:
        item = LatestLocationOut.model_validate(loc)
        item.user_name = user.name
        item.region_id = user.region_id
        out.append(item)
    return out
