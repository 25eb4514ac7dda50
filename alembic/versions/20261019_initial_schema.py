"""initial_schema

Revision ID: 5b1e0c7d9a01
Revises:
Create Date: 2026-10-19 10:12:04.118203
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5b1e0c7d9a01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    # 1) bölge / kullanıcı
    op.create_table(
        "regions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False, unique=True),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String, nullable=False, unique=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("role", sa.String, nullable=False, server_default="field_user"),
        sa.Column("region_id", sa.Integer, sa.ForeignKey("regions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String, nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('admin','manager','regional_manager','field_user')",
            name="ck_users_role",
        ),
    )
    op.create_index("ix_users_region", "users", ["region_id"])

    # 2) klinik / ürün / kampanya
    op.create_table(
        "clinics",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("region_id", sa.Integer, sa.ForeignKey("regions.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", sa.String, nullable=False, server_default="active"),
        sa.Column("contact_person", sa.String, nullable=True),
        sa.Column("contact_info", sa.String, nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_clinics_region", "clinics", ["region_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("price", sa.Numeric(18, 4), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("status", sa.String, nullable=False, server_default="active"),
        *_timestamps(),
    )
    op.create_index("ix_products_status", "products", ["status"])

    op.create_table(
        "campaigns",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("discount_percentage", sa.Numeric(9, 4), nullable=False, server_default="0"),
        sa.Column("status", sa.String, nullable=False, server_default="active"),
    )
    op.create_table(
        "campaign_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("campaign_id", sa.Integer, sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=True),
        sa.Column("unit_price", sa.Numeric(18, 4), nullable=True),
        sa.Column("excess_percentage", sa.Numeric(9, 4), nullable=True),
    )
    op.create_index("ix_campaign_items_campaign", "campaign_items", ["campaign_id"])

    # 3) teklifler
    op.create_table(
        "proposals",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("clinic_id", sa.Integer, sa.ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("campaign_id", sa.Integer, sa.ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="TRY"),
        sa.Column("discount", sa.Numeric(9, 4), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("installment_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("installment_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("down_payment_percentage", sa.Numeric(9, 4), nullable=False, server_default="0"),
        sa.Column("down_payment", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("first_payment_date", sa.Date, nullable=True),
        sa.Column("payment_method", sa.String, nullable=True),
        sa.Column("status", sa.String, nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("submission_token", sa.String(64), nullable=True, unique=True),
        sa.Column("needs_item_repair", sa.Boolean, nullable=False, server_default=sa.text("0")),
        sa.Column("approved_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("rejected_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("rejected_at", sa.DateTime, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("installment_count >= 0", name="ck_proposals_installments"),
    )
    op.create_index("ix_proposals_clinic", "proposals", ["clinic_id"])
    op.create_index("ix_proposals_user", "proposals", ["user_id"])
    op.create_index("ix_proposals_status", "proposals", ["status"])

    op.create_table(
        "proposal_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("proposal_id", sa.Integer, sa.ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 4), nullable=False),
        sa.Column("excess_percentage", sa.Numeric(9, 4), nullable=False, server_default="0"),
        sa.Column("excess", sa.Boolean, nullable=False, server_default=sa.text("0")),
        *_timestamps(updated=False),
        sa.CheckConstraint("quantity > 0", name="ck_proposal_items_qty"),
    )
    op.create_index("ix_proposal_items_proposal", "proposal_items", ["proposal_id"])

    # 4) raporlar
    op.create_table(
        "surgery_reports",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("clinic_id", sa.Integer, sa.ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time", sa.String(5), nullable=True),
        sa.Column("patient_name", sa.String, nullable=True),
        sa.Column("surgery_type", sa.String, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("status", sa.String, nullable=False, server_default="scheduled"),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('completed','scheduled','cancelled')",
            name="ck_surgery_reports_status",
        ),
    )
    op.create_index("ix_surgery_reports_clinic", "surgery_reports", ["clinic_id"])
    op.create_index("ix_surgery_reports_user", "surgery_reports", ["user_id"])

    op.create_table(
        "visit_reports",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("clinic_id", sa.Integer, sa.ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("subject", sa.String, nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time", sa.String(5), nullable=True),
        sa.Column("contact_person", sa.String, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("follow_up_required", sa.Boolean, nullable=False, server_default=sa.text("0")),
        sa.Column("follow_up_date", sa.Date, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_visit_reports_clinic", "visit_reports", ["clinic_id"])
    op.create_index("ix_visit_reports_user", "visit_reports", ["user_id"])

    # 5) konum izleri
    op.create_table(
        "user_locations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("latitude", sa.Numeric(10, 7), nullable=False),
        sa.Column("longitude", sa.Numeric(10, 7), nullable=False),
        sa.Column("event", sa.String, nullable=False, server_default="ping"),
        sa.Column("recorded_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("event IN ('login','logout','ping')", name="ck_user_locations_event"),
    )
    op.create_index("ix_user_locations_user", "user_locations", ["user_id"])


def downgrade() -> None:
    for table in (
        "user_locations",
        "visit_reports",
        "surgery_reports",
        "proposal_items",
        "proposals",
        "campaign_items",
        "campaigns",
        "products",
        "clinics",
        "users",
        "regions",
    ):
        op.drop_table(table)
