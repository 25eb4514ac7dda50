# medsales/services/scoping.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Optional

from sqlalchemy import select, false
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..models import Clinic, Proposal, SurgeryReport, VisitReport

logger = logging.getLogger(__name__)

# Kaynak adı → ORM modeli
RESOURCES = {
    "clinics": Clinic,
    "proposals": Proposal,
    "surgery_reports": SurgeryReport,
    "visit_reports": VisitReport,
}

UNRESTRICTED_ROLES = ("admin", "manager")


class RegionFallback(str, Enum):
    """Bölgesi olmayan regional_manager / field_user için bölge filtresi politikası."""

    DENY_ALL = "deny_all"
    ALLOW_ALL = "allow_all"


@dataclass(frozen=True)
class Scope:
    """
    Bir kullanıcının bir kaynak üzerindeki görünürlüğü.

    Tek bir kısıt taşır:
      - unrestricted  → ek filtre yok
      - deny          → hiçbir satır
      - owner_id      → user_id == owner_id
      - region_id     → (sadece clinics) region_id == region_id
      - clinic_ids    → clinic_id IN (...), boş küme = hiçbir satır
    """

    unrestricted: bool = False
    deny: bool = False
    owner_id: Optional[int] = None
    region_id: Optional[int] = None
    clinic_ids: Optional[FrozenSet[int]] = None

    @classmethod
    def everything(cls) -> "Scope":
        return cls(unrestricted=True)

    @classmethod
    def nothing(cls) -> "Scope":
        return cls(deny=True)

    @property
    def matches_nothing(self) -> bool:
        return self.deny or (self.clinic_ids is not None and not self.clinic_ids)

    def apply(self, stmt, model):
        if self.unrestricted:
            return stmt
        if self.matches_nothing:
            return stmt.where(false())
        if self.owner_id is not None:
            stmt = stmt.where(model.user_id == self.owner_id)
        if self.region_id is not None:
            stmt = stmt.where(model.region_id == self.region_id)
        if self.clinic_ids is not None:
            stmt = stmt.where(model.clinic_id.in_(sorted(self.clinic_ids)))
        return stmt

    def allows(self, row: Any) -> bool:
        """Tek satır için aynı kural (detay okumaları)."""
        if self.unrestricted:
            return True
        if self.matches_nothing:
            return False
        if self.owner_id is not None and getattr(row, "user_id", None) != self.owner_id:
            return False
        if self.region_id is not None and getattr(row, "region_id", None) != self.region_id:
            return False
        if self.clinic_ids is not None and getattr(row, "clinic_id", None) not in self.clinic_ids:
            return False
        return True


def resolve_fallback(value: Optional[str]) -> RegionFallback:
    raw = (value or settings.REGION_FALLBACK or RegionFallback.DENY_ALL.value).lower()
    try:
        return RegionFallback(raw)
    except ValueError:
        logger.warning("Unknown REGION_FALLBACK=%r, using deny_all", raw)
        return RegionFallback.DENY_ALL


def _region_clinic_ids(db: Session, region_id: int) -> Optional[FrozenSet[int]]:
    """Bölgedeki klinik id'leri. Hata durumunda None (çağıran 'hiçbir satır' uygular)."""
    try:
        rows = db.execute(select(Clinic.id).where(Clinic.region_id == region_id)).scalars().all()
    except SQLAlchemyError as e:
        logger.error("Clinic id resolution failed for region_id=%s: %s", region_id, e)
        return None
    return frozenset(int(r) for r in rows)


def build_scope(
    db: Session,
    user: Any,
    resource: str,
    region_fallback: Optional[str] = None,
) -> Scope:
    """
    user (id, role, region_id) ve kaynak adı için görünürlük kapsamını üretir.

      admin / manager       → kısıtsız
      regional_manager      → kendi bölgesindeki klinikler ve bu kliniklere ait kayıtlar
      field_user            → kendi kayıtları (user_id); klinik listesinde bölge
    """
    if resource not in RESOURCES:
        raise ValueError(f"Unknown resource: {resource}")

    role = getattr(user, "role", None)
    region_id = getattr(user, "region_id", None)

    if role in UNRESTRICTED_ROLES:
        return Scope.everything()

    if role not in ("regional_manager", "field_user"):
        logger.warning("User %s has unknown role %r; denying %s", getattr(user, "id", None), role, resource)
        return Scope.nothing()

    region_based = resource == "clinics" or role == "regional_manager"
    if region_based and region_id is None:
        policy = resolve_fallback(region_fallback)
        if policy is RegionFallback.DENY_ALL:
            logger.info("User %s has no region_id; %s denied (deny_all)", user.id, resource)
            return Scope.nothing()
        logger.warning("User %s has no region_id; region filter skipped for %s (allow_all)", user.id, resource)
        if resource == "clinics":
            return Scope.everything()
        # Klinik-anahtarlı kaynaklarda bölge yoksa rolün temel kuralı: kendi kayıtları
        return Scope(owner_id=user.id)

    if resource == "clinics":
        return Scope(region_id=region_id)

    if role == "regional_manager":
        ids = _region_clinic_ids(db, region_id)
        if ids is None:
            return Scope.nothing()
        return Scope(clinic_ids=ids)

    return Scope(owner_id=user.id)


def scoped_select(db: Session, user: Any, resource: str, stmt=None, region_fallback: Optional[str] = None):
    """Temel sorguya (verilmezse select(model)) kullanıcının kapsamını uygular."""
    scope = build_scope(db, user, resource, region_fallback=region_fallback)
    model = RESOURCES[resource]
    base = stmt if stmt is not None else select(model)
    return scope.apply(base, model)


def can_view(db: Session, user: Any, resource: str, row: Any, region_fallback: Optional[str] = None) -> bool:
    return build_scope(db, user, resource, region_fallback=region_fallback).allows(row)
