"""Database ORM models for the AR aging dashboard.

This module defines the SQLAlchemy models:
Invoice, InvoiceNote, FollowUp, PropertyNote, MonthlySnapshot and SystemSetting.

Invoice columns fall into three groups that the sync treats differently:
authoritative columns copied from the invoicing API, derived aging columns
recomputed on every sync, and local columns that only users change.
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(14, 2, asdecimal=False)

AUTHORITATIVE_COLUMNS = (
    "invoice_number",
    "company_name",
    "property_name",
    "opportunity_name",
    "opportunity_number",
    "branch_name",
    "amount",
    "amount_remaining",
    "due_date",
    "invoice_date",
    "primary_contact_name",
    "primary_contact_email",
    "billing_contact_name",
    "billing_contact_email",
    "payment_terms_name",
)

DERIVED_COLUMNS = (
    "past_due",
    "aging_category",
    "aging_1_30",
    "aging_31_60",
    "aging_61_90",
    "aging_91_120",
    "aging_121_plus",
)

LOCAL_COLUMNS = ("is_ghosting", "is_terminated", "payment_status", "comments")

SYNCED_COLUMNS = AUTHORITATIVE_COLUMNS + DERIVED_COLUMNS


class Invoice(Base):
    """ORM model for ar_aging_invoices, one row per external invoice.

    Attributes:
        invoice_id (int): External InvoiceID; primary key.
        amount_remaining (float): Outstanding balance, split into one aging_* column.
        past_due (int): Days past due, 0 when not yet due.
        aging_category (str): "Not Past Due" or "Aging <bucket>".
        is_ghosting (bool): Local flag, customer not responding.
        is_terminated (bool): Local flag, contract terminated.
        payment_status (str): Local follow-up status, see PaymentStatus.
        comments (str): Local free text.
        last_synced_at (datetime): Set on every sync write; NULL marks rows that
            predate the external-ID keying.
    """

    __tablename__ = "ar_aging_invoices"
    invoice_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=False)
    invoice_number = Column(String, nullable=False, default="", index=True)
    company_name = Column(String, nullable=False, default="", index=True)
    property_name = Column(String, nullable=False, default="")
    opportunity_name = Column(String, nullable=False, default="")
    opportunity_number = Column(String, nullable=False, default="")
    branch_name = Column(String, nullable=False, default="")
    amount = Column(Money, nullable=False, default=0)
    amount_remaining = Column(Money, nullable=False, default=0)
    due_date = Column(Date)
    invoice_date = Column(Date)
    primary_contact_name = Column(String, nullable=False, default="")
    primary_contact_email = Column(String, nullable=False, default="")
    billing_contact_name = Column(String, nullable=False, default="")
    billing_contact_email = Column(String, nullable=False, default="")
    payment_terms_name = Column(String, nullable=False, default="")

    past_due = Column(Integer, nullable=False, default=0)
    aging_category = Column(String, nullable=False, default="Not Past Due")
    aging_1_30 = Column(Money, nullable=False, default=0)
    aging_31_60 = Column(Money, nullable=False, default=0)
    aging_61_90 = Column(Money, nullable=False, default=0)
    aging_91_120 = Column(Money, nullable=False, default=0)
    aging_121_plus = Column(Money, nullable=False, default=0)

    is_ghosting = Column(Boolean, nullable=False, default=False)
    is_terminated = Column(Boolean, nullable=False, default=False)
    payment_status = Column(String, nullable=False, default="No Follow Up")
    comments = Column(Text, nullable=False, default="")

    last_synced_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class InvoiceNote(Base):
    """ORM model for invoice_notes.

    Attributes:
        id (int): Primary key.
        invoice_id (int): External invoice ID the note is attached to.
        note_text (str): Free text.
        created_by (str): Caller identity of the author.
        created_at (datetime): Creation timestamp.
        is_follow_up (bool): Whether the note also schedules a follow-up.
        follow_up_date (date): Optional follow-up date.
    """

    __tablename__ = "invoice_notes"
    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, index=True)
    note_text = Column(Text, nullable=False)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    is_follow_up = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(Date)


class FollowUp(Base):
    """ORM model for follow_ups.

    Invoice number, company, property and amount are copied from the invoice at
    creation so completed follow-ups stay readable after the invoice changes or
    is paid off.
    """

    __tablename__ = "follow_ups"
    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, index=True)
    note_id = Column(Integer, ForeignKey("invoice_notes.id", ondelete="SET NULL"))
    invoice_number = Column(String, nullable=False, default="")
    company_name = Column(String, nullable=False, default="")
    property_name = Column(String, nullable=False, default="")
    amount = Column(Money, nullable=False, default=0)
    note_text = Column(Text, nullable=False)
    follow_up_date = Column(Date, nullable=False)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime)


class PropertyNote(Base):
    """ORM model for property_notes, at most one note per property name."""

    __tablename__ = "property_notes"
    id = Column(Integer, primary_key=True, index=True)
    property_name = Column(String, nullable=False, unique=True)
    note_text = Column(Text, nullable=False)
    updated_by = Column(String, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class MonthlySnapshot(Base):
    """ORM model for monthly_ar_snapshots.

    Attributes:
        snapshot_date (date): Point in time the aggregate describes.
        region (str): "all", "phoenix" or "las-vegas".
        company_breakdown (JSON): Top companies by outstanding total.
    """

    __tablename__ = "monthly_ar_snapshots"
    __table_args__ = (
        UniqueConstraint("snapshot_date", "region", name="uq_snapshot_date_region"),
    )
    id = Column(Integer, primary_key=True, index=True)
    snapshot_date = Column(Date, nullable=False)
    region = Column(String, nullable=False)
    total_outstanding = Column(Money, nullable=False, default=0)
    invoice_count = Column(Integer, nullable=False, default=0)
    aging_1_30 = Column(Money, nullable=False, default=0)
    aging_31_60 = Column(Money, nullable=False, default=0)
    aging_61_90 = Column(Money, nullable=False, default=0)
    aging_91_120 = Column(Money, nullable=False, default=0)
    aging_121_plus = Column(Money, nullable=False, default=0)
    count_1_30 = Column(Integer, nullable=False, default=0)
    count_31_60 = Column(Integer, nullable=False, default=0)
    count_61_90 = Column(Integer, nullable=False, default=0)
    count_91_120 = Column(Integer, nullable=False, default=0)
    count_121_plus = Column(Integer, nullable=False, default=0)
    company_breakdown = Column(JSON, nullable=False, default=list)
    created_by = Column(String)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class SystemSetting(Base):
    """ORM model for system_settings key/value rows."""

    __tablename__ = "system_settings"
    key = Column(String, primary_key=True)
    value = Column(Text)
    updated_by = Column(String)
    updated_at = Column(DateTime)
