# tests/conftest.py
import os
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Uygulama & modeller
from medsales.main import app
from medsales.api import deps as app_deps
from medsales.models import (
    Base,
    Region,
    User,
    Clinic,
    Product,
    Campaign,
    CampaignItem,
)

# -----------------------------
# Test DB: ayrı bir SQLite dosyası
# -----------------------------
TEST_DB_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "test_api.db"))
TEST_DB_URL = f"sqlite:///{TEST_DB_PATH}"

engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# -----------------------------
# Bağımlılık override'ları
# -----------------------------
def override_get_db():
    """App'in get_db bağımlılığını test DB ile değiştirir."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Aktif test kullanıcısı; `login` fixture'ı değiştirir
_CURRENT = {"user": None}


def override_get_current_user():
    """Auth'u bypass etmek için seçili kullanıcıyı döndür."""
    return _CURRENT["user"]


app.dependency_overrides[app_deps.get_db] = override_get_db
app.dependency_overrides[app_deps.get_current_user] = override_get_current_user


# -----------------------------
# Seed
# -----------------------------
# Kullanıcı id'leri (testlerde isimle kullanılır)
ADMIN = 1
MANAGER = 2
RM_5 = 3          # regional_manager, bölge 5
FIELD_5 = 4       # field_user, bölge 5
FIELD_1 = 5       # field_user, bölge 1
RM_NONE = 6       # regional_manager, bölgesiz
FIELD_NONE = 7    # field_user, bölgesiz
INACTIVE = 8


def _seed(db):
    db.add_all([
        Region(id=1, name="Marmara"),
        Region(id=2, name="Ege"),
        Region(id=5, name="İç Anadolu"),
    ])
    db.add_all([
        User(id=ADMIN, email="admin@medsales.local", name="Admin", role="admin"),
        User(id=MANAGER, email="manager@medsales.local", name="Müdür", role="manager", region_id=1),
        User(id=RM_5, email="rm5@medsales.local", name="Bölge 5 Müdürü", role="regional_manager", region_id=5),
        User(id=FIELD_5, email="field5@medsales.local", name="Saha 5", role="field_user", region_id=5),
        User(id=FIELD_1, email="field1@medsales.local", name="Saha 1", role="field_user", region_id=1),
        User(id=RM_NONE, email="rm-none@medsales.local", name="Bölgesiz Müdür", role="regional_manager"),
        User(id=FIELD_NONE, email="field-none@medsales.local", name="Bölgesiz Saha", role="field_user"),
        User(id=INACTIVE, email="old@medsales.local", name="Eski", role="field_user", region_id=5, status="inactive"),
    ])
    db.add_all([
        Clinic(id=1, name="Ankara Şehir", region_id=5),
        Clinic(id=2, name="Konya Tıp", region_id=5),
        Clinic(id=3, name="İzmir Ege", region_id=2),
        Clinic(id=4, name="İstanbul Ortopedi", region_id=1),
        Clinic(id=5, name="Kapalı Klinik", region_id=5, status="inactive"),
    ])
    db.add_all([
        Product(id=1, name="Titanium Plate", price=Decimal("100"), currency="USD"),
        Product(id=2, name="Bone Screw", price=Decimal("50"), currency="EUR"),
        Product(id=3, name="Spinal Cage", price=Decimal("1000"), currency="TRY"),
        Product(id=4, name="Old Implant", price=Decimal("10"), currency="TRY", status="inactive"),
    ])
    db.add_all([
        Campaign(id=1, name="Bahar Kampanyası", discount_percentage=Decimal("15")),
        Campaign(id=2, name="Eski Kampanya", discount_percentage=Decimal("5"), status="inactive"),
        Campaign(id=3, name="Bozuk Kampanya", discount_percentage=Decimal("10")),
    ])
    db.add_all([
        # unit_price yok → ürün fiyatı (100 USD)
        CampaignItem(id=1, campaign_id=1, product_id=1, quantity=2),
        CampaignItem(id=2, campaign_id=1, product_id=3, quantity=1, unit_price=Decimal("900"),
                     excess_percentage=Decimal("10")),
        CampaignItem(id=3, campaign_id=2, product_id=3, quantity=1),
        # silinmiş ürün (SQLite FK zorlamaz)
        CampaignItem(id=4, campaign_id=3, product_id=3, quantity=1),
        CampaignItem(id=5, campaign_id=3, product_id=999, quantity=1),
    ])
    db.commit()


# -----------------------------
# Pytest fixture'ları
# -----------------------------
@pytest.fixture(autouse=True)
def _fresh_db():
    """Her test temiz şema + seed ile başlar."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        _seed(db)
    finally:
        db.close()
    yield
    _CURRENT["user"] = None


@pytest.fixture(scope="session", autouse=True)
def _cleanup_db_file():
    yield
    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _current_user(user_id: int) -> app_deps.CurrentUser:
    s = TestingSessionLocal()
    try:
        u = s.get(User, user_id)
        return app_deps.CurrentUser(id=u.id, email=u.email, name=u.name, role=u.role, region_id=u.region_id)
    finally:
        s.close()


@pytest.fixture
def login():
    """login(user_id) → API çağrıları o kullanıcı adına yapılır."""
    def _login(user_id: int) -> app_deps.CurrentUser:
        user = _current_user(user_id)
        _CURRENT["user"] = user
        return user
    return _login


@pytest.fixture
def user():
    """Servis testleri için CurrentUser üretir."""
    return _current_user


@pytest.fixture
def client(login):
    login(ADMIN)
    with TestClient(app) as c:
        yield c
