"""Initial migration

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(14, 2)


def _money(name):
    return sa.Column(name, MONEY, nullable=False, server_default="0")


def _text(name):
    return sa.Column(name, sa.String(), nullable=False, server_default="")


def upgrade():
    op.create_table(
        "ar_aging_invoices",
        sa.Column("invoice_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        _text("invoice_number"),
        _text("company_name"),
        _text("property_name"),
        _text("opportunity_name"),
        _text("opportunity_number"),
        _text("branch_name"),
        _money("amount"),
        _money("amount_remaining"),
        sa.Column("due_date", sa.Date()),
        sa.Column("invoice_date", sa.Date()),
        _text("primary_contact_name"),
        _text("primary_contact_email"),
        _text("billing_contact_name"),
        _text("billing_contact_email"),
        _text("payment_terms_name"),
        sa.Column("past_due", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("aging_category", sa.String(), nullable=False, server_default="Not Past Due"),
        _money("aging_1_30"),
        _money("aging_31_60"),
        _money("aging_61_90"),
        _money("aging_91_120"),
        _money("aging_121_plus"),
        sa.Column("is_ghosting", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_terminated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("payment_status", sa.String(), nullable=False, server_default="No Follow Up"),
        sa.Column("comments", sa.Text(), nullable=False, server_default=""),
        sa.Column("last_synced_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_ar_aging_invoices_invoice_number", "ar_aging_invoices", ["invoice_number"])
    op.create_index("ix_ar_aging_invoices_company_name", "ar_aging_invoices", ["company_name"])

    op.create_table(
        "invoice_notes",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("invoice_id", sa.BigInteger(), nullable=False, index=True),
        sa.Column("note_text", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("is_follow_up", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("follow_up_date", sa.Date()),
    )
    op.create_table(
        "follow_ups",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("invoice_id", sa.BigInteger(), nullable=False, index=True),
        sa.Column(
            "note_id",
            sa.Integer(),
            sa.ForeignKey("invoice_notes.id", ondelete="SET NULL"),
        ),
        _text("invoice_number"),
        _text("company_name"),
        _text("property_name"),
        _money("amount"),
        sa.Column("note_text", sa.Text(), nullable=False),
        sa.Column("follow_up_date", sa.Date(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_table(
        "property_notes",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("property_name", sa.String(), nullable=False, unique=True),
        sa.Column("note_text", sa.Text(), nullable=False),
        sa.Column("updated_by", sa.String(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "monthly_ar_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("region", sa.String(), nullable=False),
        _money("total_outstanding"),
        sa.Column("invoice_count", sa.Integer(), nullable=False, server_default="0"),
        _money("aging_1_30"),
        _money("aging_31_60"),
        _money("aging_61_90"),
        _money("aging_91_120"),
        _money("aging_121_plus"),
        sa.Column("count_1_30", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("count_31_60", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("count_61_90", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("count_91_120", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("count_121_plus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("company_breakdown", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("snapshot_date", "region", name="uq_snapshot_date_region"),
    )
    op.create_table(
        "system_settings",
        sa.Column("key", sa.String(), primary_key=True),
        sa.Column("value", sa.Text()),
        sa.Column("updated_by", sa.String()),
        sa.Column("updated_at", sa.DateTime()),
    )


def downgrade():
    op.drop_table("system_settings")
    op.drop_table("monthly_ar_snapshots")
    op.drop_table("property_notes")
    op.drop_table("follow_ups")
    op.drop_table("invoice_notes")
    op.drop_index("ix_ar_aging_invoices_company_name", table_name="ar_aging_invoices")
    op.drop_index("ix_ar_aging_invoices_invoice_number", table_name="ar_aging_invoices")
    op.drop_table("ar_aging_invoices")
