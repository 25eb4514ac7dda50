# tests/test_scoping.py
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from medsales.models import Clinic, Proposal, VisitReport
from medsales.services import scoping
from .conftest import ADMIN, MANAGER, RM_5, FIELD_5, FIELD_1, RM_NONE, FIELD_NONE


@pytest.fixture
def proposals(db):
    rows = [
        Proposal(id=101, clinic_id=1, user_id=FIELD_5),    # bölge 5
        Proposal(id=102, clinic_id=4, user_id=FIELD_1),    # bölge 1
        Proposal(id=103, clinic_id=2, user_id=RM_5),       # bölge 5
        Proposal(id=104, clinic_id=3, user_id=FIELD_NONE), # bölge 2
    ]
    db.add_all(rows)
    db.commit()
    return rows


def _ids(db, user, resource, **kw):
    stmt = scoping.scoped_select(db, user, resource, **kw)
    model = scoping.RESOURCES[resource]
    return sorted(r.id for r in db.execute(stmt.order_by(model.id)).scalars().all())


@pytest.mark.parametrize("uid", [ADMIN, MANAGER])
def test_admin_and_manager_see_everything(db, user, proposals, uid):
    assert _ids(db, user(uid), "proposals") == [101, 102, 103, 104]
    assert _ids(db, user(uid), "clinics") == [1, 2, 3, 4, 5]


def test_field_user_sees_only_own_records(db, user, proposals):
    assert _ids(db, user(FIELD_5), "proposals") == [101]
    assert _ids(db, user(FIELD_1), "proposals") == [102]


def test_field_user_clinics_limited_to_region(db, user):
    assert _ids(db, user(FIELD_5), "clinics") == [1, 2, 5]


def test_regional_manager_sees_region_clinic_records(db, user, proposals):
    assert _ids(db, user(RM_5), "proposals") == [101, 103]


def test_regional_manager_never_sees_other_regions_visit_reports(db, user):
    db.add_all([
        VisitReport(id=1, user_id=FIELD_5, clinic_id=1, subject="Tanıtım", date=date(2025, 1, 2)),
        VisitReport(id=2, user_id=FIELD_1, clinic_id=4, subject="Takip", date=date(2025, 1, 3)),
    ])
    db.commit()
    assert _ids(db, user(RM_5), "visit_reports") == [1]


def test_missing_region_denies_by_default(db, user, proposals):
    assert _ids(db, user(RM_NONE), "proposals", region_fallback="deny_all") == []
    assert _ids(db, user(RM_NONE), "clinics", region_fallback="deny_all") == []
    assert _ids(db, user(FIELD_NONE), "clinics", region_fallback="deny_all") == []


def test_missing_region_allow_all_is_explicit_choice(db, user, proposals):
    assert _ids(db, user(FIELD_NONE), "clinics", region_fallback="allow_all") == [1, 2, 3, 4, 5]
    # klinik-anahtarlı kaynakta kendi kayıtlarına düşer
    assert _ids(db, user(RM_NONE), "proposals", region_fallback="allow_all") == []


def test_field_user_without_region_still_sees_own_proposals(db, user, proposals):
    assert _ids(db, user(FIELD_NONE), "proposals", region_fallback="deny_all") == [104]


def test_unknown_fallback_value_means_deny():
    assert scoping.resolve_fallback("whatever") is scoping.RegionFallback.DENY_ALL


def test_failed_clinic_resolution_denies(user):
    broken = MagicMock()
    broken.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
    scope = scoping.build_scope(broken, user(RM_5), "proposals")
    assert scope.matches_nothing


def test_can_view_single_row(db, user, proposals):
    p102 = db.get(Proposal, 102)
    assert scoping.can_view(db, user(ADMIN), "proposals", p102)
    assert not scoping.can_view(db, user(RM_5), "proposals", p102)
    assert not scoping.can_view(db, user(FIELD_5), "clinics", db.get(Clinic, 3))


def test_unknown_role_and_resource():
    class Odd:
        id = 99
        role = "guest"
        region_id = 5

    assert scoping.build_scope(None, Odd(), "clinics").matches_nothing
    with pytest.raises(ValueError):
        scoping.build_scope(None, Odd(), "invoices")
