# medsales/services/workflow.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import PermissionDenied, ValidationError, WriteError
from ..models import Proposal

logger = logging.getLogger(__name__)

# Süreç sırası (onaydan teslimata)
PROCESS_ORDER = [
    "pending",
    "approved",
    "contract_received",
    "in_transfer",
    "delivered",
]
PROCESS_IDX = {s: i for i, s in enumerate(PROCESS_ORDER)}

# Bu durumlardan ilerleme yok
CLOSED_STATUSES = ("rejected", "expired", "delivered")

APPROVER_ROLES = ("admin", "manager")


def can_manage(user: Any) -> bool:
    return getattr(user, "role", None) in APPROVER_ROLES


def _require_manager(user: Any) -> None:
    if not can_manage(user):
        raise PermissionDenied("Only admin or manager can change proposal status")


def _append_note(existing: Optional[str], label: str, note: Optional[str]) -> Optional[str]:
    if not note:
        return existing
    prefix = f"{existing}\n\n" if existing else ""
    return f"{prefix}{label}: {note}"


def next_status(status: str) -> Optional[str]:
    idx = PROCESS_IDX.get(status)
    if idx is None or idx >= len(PROCESS_ORDER) - 1:
        return None
    return PROCESS_ORDER[idx + 1]


def _save(db: Session, proposal: Proposal, action: str) -> Proposal:
    try:
        db.commit()
        db.refresh(proposal)
    except SQLAlchemyError as e:
        db.rollback()
        raise WriteError(f"Proposal could not be {action}: {e}") from e
    logger.info("Proposal %s %s -> %s", proposal.id, action, proposal.status)
    return proposal


def approve(db: Session, proposal: Proposal, user: Any, note: Optional[str] = None) -> Proposal:
    _require_manager(user)
    if proposal.status != "pending":
        raise ValidationError(f"Only pending proposals can be approved (status={proposal.status})")
    proposal.status = "approved"
    proposal.approved_by = user.id
    proposal.approved_at = datetime.utcnow()
    proposal.notes = _append_note(proposal.notes, "Approval note", note)
    return _save(db, proposal, "approved")


def reject(db: Session, proposal: Proposal, user: Any, note: Optional[str] = None) -> Proposal:
    _require_manager(user)
    if proposal.status != "pending":
        raise ValidationError(f"Only pending proposals can be rejected (status={proposal.status})")
    proposal.status = "rejected"
    proposal.rejected_by = user.id
    proposal.rejected_at = datetime.utcnow()
    proposal.notes = _append_note(proposal.notes, "Rejection note", note)
    return _save(db, proposal, "rejected")


def advance(db: Session, proposal: Proposal, user: Any, target: Optional[str] = None) -> Proposal:
    """
    Süreci ileri taşır. target verilmezse bir sonraki adım.
    total_amount'a dokunulmaz (oluşturma anında dondurulmuştur).
    """
    _require_manager(user)
    if proposal.status in CLOSED_STATUSES:
        raise ValidationError(f"Proposal in status {proposal.status} cannot be advanced")

    dest = target or next_status(proposal.status)
    if dest is None or dest not in PROCESS_IDX:
        raise ValidationError(f"Invalid target status: {target!r}")
    if PROCESS_IDX[dest] <= PROCESS_IDX.get(proposal.status, 0):
        raise ValidationError(f"Cannot move proposal from {proposal.status} back to {dest}")
    if dest == "approved" and proposal.approved_by is None:
        proposal.approved_by = user.id
        proposal.approved_at = datetime.utcnow()

    proposal.status = dest
    return _save(db, proposal, "advanced")
