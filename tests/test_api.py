# tests/test_api.py
from decimal import Decimal

from fastapi.testclient import TestClient

from medsales.main import app
from medsales.api import deps as app_deps
from medsales.core.config import settings
from medsales.core.security import create_access_token
from .conftest import ADMIN, MANAGER, RM_5, FIELD_5, FIELD_1, RM_NONE, INACTIVE, override_get_current_user


# -----------------------------
# System / auth
# -----------------------------
def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_me_with_real_token():
    app.dependency_overrides.pop(app_deps.get_current_user)
    try:
        with TestClient(app) as c:
            token = create_access_token(str(FIELD_5), "field_user")
            r = c.get("/me", headers={"Authorization": f"Bearer {token}"})
            assert r.status_code == 200
            assert r.json()["role"] == "field_user"
            assert r.json()["region_id"] == 5

            assert c.get("/me", headers={"Authorization": "Bearer garbage"}).status_code == 401

            token = create_access_token(str(INACTIVE), "field_user")
            assert c.get("/me", headers={"Authorization": f"Bearer {token}"}).status_code == 403

            token = create_access_token("9999", "admin")
            assert c.get("/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401
    finally:
        app.dependency_overrides[app_deps.get_current_user] = override_get_current_user


# -----------------------------
# FX
# -----------------------------
def test_fx_rates_matrix(client):
    body = client.get("/fx/rates").json()
    assert body["currencies"] == ["TRY", "USD", "EUR"]
    assert Decimal(body["rates"]["USD"]["TRY"]) == settings.FX_USD_TRY
    assert Decimal(body["rates"]["EUR"]["EUR"]) == Decimal("1")


def test_fx_convert(client):
    r = client.get("/fx/convert", params={"amount": "200", "from": "USD", "to": "TRY"})
    assert r.status_code == 200
    assert Decimal(r.json()["result"]) == Decimal("7584.00")
    r = client.get("/fx/convert", params={"amount": "1", "from": "GBP", "to": "TRY"})
    assert r.status_code == 422


# -----------------------------
# Catalog
# -----------------------------
def test_clinics_scoped_by_region(client, login):
    login(FIELD_5)
    names = [c["name"] for c in client.get("/clinics/").json()]
    assert names == ["Ankara Şehir", "Konya Tıp"]

    login(ADMIN)
    assert len(client.get("/clinics/").json()) == 4

    login(RM_NONE)
    assert client.get("/clinics/").json() == []


def test_create_clinic_defaults_to_creator_region(client, login):
    login(FIELD_5)
    r = client.post("/clinics/", json={"name": "Kayseri Devlet", "contact_person": "Dr. Aydın"})
    assert r.status_code == 201, r.text
    c = r.json()
    assert c["region_id"] == 5
    assert c["status"] == "active"
    assert c["created_by"] == FIELD_5

    assert client.post("/clinics/", json={"name": "Başka", "region_id": 1}).status_code == 403

    login(RM_NONE)
    assert client.post("/clinics/", json={"name": "Bölgesiz"}).status_code == 422


def test_products_only_active(client):
    ids = [p["id"] for p in client.get("/products/").json()]
    assert sorted(ids) == [1, 2, 3]


def test_campaigns_list_and_expand(client):
    assert sorted(c["id"] for c in client.get("/campaigns/").json()) == [1, 3]

    body = client.get("/campaigns/1/expand", params={"currency": "USD"}).json()
    assert body["error"] is None
    assert Decimal(body["discount_percentage"]) == Decimal("15")
    assert Decimal(body["items"][0]["total"]) == Decimal("200")

    body = client.get("/campaigns/2/expand").json()
    assert body["items"] == []
    assert body["error"]


# -----------------------------
# Reports
# -----------------------------
def test_surgery_report_create_and_scope(client, login):
    login(FIELD_5)
    r = client.post("/surgery-reports/", json={
        "clinic_id": 1,
        "product_id": 3,
        "date": "2025-03-10",
        "time": "09:30",
        "patient_name": "A.Y.",
        "surgery_type": "Lomber füzyon",
    })
    assert r.status_code == 201, r.text
    assert r.json()["user_id"] == FIELD_5
    assert r.json()["status"] == "scheduled"
    assert r.json()["clinic_name"] == "Ankara Şehir"

    # bölge dışı klinik
    r = client.post("/surgery-reports/", json={"clinic_id": 4, "date": "2025-03-10"})
    assert r.status_code == 422

    login(FIELD_1)
    assert client.get("/surgery-reports/").json()["total"] == 0
    login(RM_5)
    assert client.get("/surgery-reports/").json()["total"] == 1


def test_visit_report_follow_up_rules(client, login):
    login(FIELD_5)
    base = {"clinic_id": 2, "subject": "Ürün tanıtımı", "date": "2025-03-11"}
    r = client.post("/visit-reports/", json={**base, "follow_up_required": True})
    assert r.status_code == 422

    r = client.post("/visit-reports/", json={**base, "follow_up_date": "2025-04-01"})
    assert r.status_code == 201
    assert r.json()["follow_up_date"] is None

    r = client.post("/visit-reports/", json={**base, "follow_up_required": True, "follow_up_date": "2025-04-01"})
    assert r.status_code == 201

    r = client.get("/visit-reports/", params={"date_from": "2025-03-01", "date_to": "2025-03-31"})
    assert r.json()["total"] == 2


def test_report_time_format_validated(client):
    r = client.post("/visit-reports/", json={"clinic_id": 1, "subject": "x", "date": "2025-03-11", "time": "25:00"})
    assert r.status_code == 422


# -----------------------------
# Locations
# -----------------------------
def test_locations_latest_per_user(client, login):
    login(FIELD_5)
    assert client.post("/locations/", json={"latitude": "39.93", "longitude": "32.85", "event": "login"}).status_code == 201
    assert client.post("/locations/", json={"latitude": "39.94", "longitude": "32.86"}).status_code == 201
    login(FIELD_1)
    client.post("/locations/", json={"latitude": "41.01", "longitude": "28.97", "event": "login"})

    login(FIELD_5)
    assert client.get("/locations/latest").status_code == 403

    login(RM_5)
    rows = client.get("/locations/latest").json()
    assert [r["user_id"] for r in rows] == [FIELD_5]
    assert rows[0]["event"] == "ping"

    login(MANAGER)
    assert sorted(r["user_id"] for r in client.get("/locations/latest").json()) == [FIELD_5, FIELD_1]


def test_location_event_validated(client):
    r = client.post("/locations/", json={"latitude": "1", "longitude": "1", "event": "teleport"})
    assert r.status_code == 422


def test_reports_reject_inactive_clinic(client, login):
    login(FIELD_5)
    r = client.post("/surgery-reports/", json={"clinic_id": 5, "date": "2025-03-10"})
    assert r.status_code == 422
    r = client.post("/visit-reports/", json={"clinic_id": 5, "subject": "Ziyaret", "date": "2025-03-11"})
    assert r.status_code == 422
    assert client.get("/visit-reports/").json()["total"] == 0
