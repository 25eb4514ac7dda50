# medsales/models/__init__.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    ForeignKey,
    Index,
    CheckConstraint,
    func,
    Numeric,
    Boolean,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ROLES = ("admin", "manager", "regional_manager", "field_user")
CURRENCIES = ("TRY", "USD", "EUR")
PROPOSAL_STATUSES = (
    "pending",
    "approved",
    "rejected",
    "expired",
    "contract_received",
    "in_transfer",
    "delivered",
)


# =========================
# Core (Region / User)
# =========================
class Region(Base):
    __tablename__ = "regions"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="field_user")
    region_id = Column(Integer, ForeignKey("regions.id", ondelete="SET NULL"), nullable=True)
    # Kullanıcı silinmez, sadece pasife alınır
    status = Column(String, nullable=False, default="active", server_default="active")

    created_at = Column(DateTime, server_default=func.now())

    region = relationship("Region", lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin','manager','regional_manager','field_user')",
            name="ck_users_role",
        ),
        Index("ix_users_region", "region_id"),
    )


# =========================
# Clinics
# =========================
class Clinic(Base):
    __tablename__ = "clinics"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    region_id = Column(Integer, ForeignKey("regions.id", ondelete="RESTRICT"), nullable=False)
    status = Column(String, nullable=False, default="active", server_default="active")

    contact_person = Column(String, nullable=True)
    contact_info = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    region = relationship("Region", lazy="selectin")

    __table_args__ = (Index("ix_clinics_region", "region_id"),)


# =========================
# PRODUCTS & CAMPAIGNS
# =========================
class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Fiyat ürünün KENDİ para biriminde tutulur (teklifin değil)
    price = Column(Numeric(18, 4), nullable=True)
    currency = Column(String(3), nullable=True, default="TRY")
    status = Column(String, nullable=False, default="active", server_default="active")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_products_status", "status"),)


class Campaign(Base):
    __tablename__ = "campaigns"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    discount_percentage = Column(Numeric(9, 4), nullable=False, default=0)
    status = Column(String, nullable=False, default="active", server_default="active")

    items = relationship("CampaignItem", back_populates="campaign", cascade="all, delete-orphan", lazy="selectin")


class CampaignItem(Base):
    __tablename__ = "campaign_items"
    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    quantity = Column(Integer, nullable=True)
    unit_price = Column(Numeric(18, 4), nullable=True)  # None → ürün fiyatı
    excess_percentage = Column(Numeric(9, 4), nullable=True)

    campaign = relationship("Campaign", back_populates="items", lazy="selectin")
    product = relationship("Product", lazy="selectin")

    __table_args__ = (Index("ix_campaign_items_campaign", "campaign_id"),)


# =========================
# PROPOSALS
# =========================
class Proposal(Base):
    __tablename__ = "proposals"
    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True)

    currency = Column(String(3), nullable=False, default="TRY")
    discount = Column(Numeric(9, 4), nullable=False, default=0)
    # Oluşturma anında dondurulur; sonradan kalemlerden yeniden hesaplanmaz
    total_amount = Column(Numeric(18, 2), nullable=False, default=0)

    installment_count = Column(Integer, nullable=False, default=1)
    installment_amount = Column(Numeric(18, 2), nullable=False, default=0)
    down_payment_percentage = Column(Numeric(9, 4), nullable=False, default=0)
    down_payment = Column(Numeric(18, 2), nullable=False, default=0)
    first_payment_date = Column(Date, nullable=True)
    payment_method = Column(String, nullable=True)

    status = Column(String, nullable=False, default="pending", server_default="pending")
    notes = Column(Text, nullable=True)

    # Saga / idempotency
    submission_token = Column(String(64), nullable=True, unique=True)
    needs_item_repair = Column(Boolean, nullable=False, default=False, server_default="0")

    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic", lazy="selectin")
    creator = relationship("User", foreign_keys=[user_id], lazy="selectin")
    items = relationship("ProposalItemRow", back_populates="proposal", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        CheckConstraint("installment_count >= 0", name="ck_proposals_installments"),
        Index("ix_proposals_clinic", "clinic_id"),
        Index("ix_proposals_user", "user_id"),
        Index("ix_proposals_status", "status"),
    )


class ProposalItemRow(Base):
    __tablename__ = "proposal_items"
    id = Column(Integer, primary_key=True, index=True)
    proposal_id = Column(Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(18, 4), nullable=False)
    excess_percentage = Column(Numeric(9, 4), nullable=False, default=0)
    excess = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    proposal = relationship("Proposal", back_populates="items", lazy="selectin")
    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_proposal_items_qty"),
        Index("ix_proposal_items_proposal", "proposal_id"),
    )


# =========================
# REPORTS
# =========================
class SurgeryReport(Base):
    __tablename__ = "surgery_reports"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=True)  # "HH:MM"
    patient_name = Column(String, nullable=True)
    surgery_type = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="scheduled", server_default="scheduled")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic", lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "status IN ('completed','scheduled','cancelled')",
            name="ck_surgery_reports_status",
        ),
        Index("ix_surgery_reports_clinic", "clinic_id"),
        Index("ix_surgery_reports_user", "user_id"),
    )


class VisitReport(Base):
    __tablename__ = "visit_reports"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False)

    subject = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=True)
    contact_person = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    follow_up_required = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(Date, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic", lazy="selectin")

    __table_args__ = (
        Index("ix_visit_reports_clinic", "clinic_id"),
        Index("ix_visit_reports_user", "user_id"),
    )


# =========================
# LOCATIONS (login/logout izleri)
# =========================
class UserLocation(Base):
    __tablename__ = "user_locations"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    latitude = Column(Numeric(10, 7), nullable=False)
    longitude = Column(Numeric(10, 7), nullable=False)
    event = Column(String, nullable=False, default="ping")  # login|logout|ping
    recorded_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("event IN ('login','logout','ping')", name="ck_user_locations_event"),
        Index("ix_user_locations_user", "user_id"),
    )
