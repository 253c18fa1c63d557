"""Typed invoice rows read from the ar_aging_invoices table.

Rows are validated into ``InvoiceRecord`` at this boundary: NULLs and
malformed values are replaced with the same defaults the sync writes, so the
aggregation code never has to guard against missing fields.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from ar_aging.aging.classifier import to_utc_date
from ar_aging.db.models import SYNCED_COLUMNS, Invoice
from ar_aging.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PAYMENT_STATUS = "No Follow Up"


def _money(value) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        logger.warning(f"Invalid amount value: {value!r}")
        return 0.0


def _text(value) -> str:
    return "" if value is None else str(value)


@dataclass
class InvoiceRecord:
    """In-memory view of one invoice used by filters and aggregations."""

    invoice_id: int
    invoice_number: str = ""
    company_name: str = ""
    property_name: str = ""
    opportunity_name: str = ""
    opportunity_number: str = ""
    branch_name: str = ""
    amount: float = 0.0
    amount_remaining: float = 0.0
    due_date: Optional[date] = None
    invoice_date: Optional[date] = None
    past_due: int = 0
    aging_category: str = "Not Past Due"
    aging_1_30: float = 0.0
    aging_31_60: float = 0.0
    aging_61_90: float = 0.0
    aging_91_120: float = 0.0
    aging_121_plus: float = 0.0
    primary_contact_name: str = ""
    primary_contact_email: str = ""
    billing_contact_name: str = ""
    billing_contact_email: str = ""
    payment_terms_name: str = ""
    is_ghosting: bool = False
    is_terminated: bool = False
    payment_status: str = DEFAULT_PAYMENT_STATUS
    comments: str = ""

    @classmethod
    def from_row(cls, row) -> "InvoiceRecord":
        """Build a record from an ORM row or a column mapping, applying defaults."""
        get = row.get if isinstance(row, Mapping) else (lambda k, d=None: getattr(row, k, d))
        try:
            past_due = int(get("past_due") or 0)
        except (TypeError, ValueError):
            past_due = 0
        return cls(
            invoice_id=int(get("invoice_id")),
            invoice_number=_text(get("invoice_number")),
            company_name=_text(get("company_name")),
            property_name=_text(get("property_name")),
            opportunity_name=_text(get("opportunity_name")),
            opportunity_number=_text(get("opportunity_number")),
            branch_name=_text(get("branch_name")),
            amount=_money(get("amount")),
            amount_remaining=_money(get("amount_remaining")),
            due_date=to_utc_date(get("due_date")),
            invoice_date=to_utc_date(get("invoice_date")),
            past_due=max(past_due, 0),
            aging_category=_text(get("aging_category")) or "Not Past Due",
            aging_1_30=_money(get("aging_1_30")),
            aging_31_60=_money(get("aging_31_60")),
            aging_61_90=_money(get("aging_61_90")),
            aging_91_120=_money(get("aging_91_120")),
            aging_121_plus=_money(get("aging_121_plus")),
            primary_contact_name=_text(get("primary_contact_name")),
            primary_contact_email=_text(get("primary_contact_email")),
            billing_contact_name=_text(get("billing_contact_name")),
            billing_contact_email=_text(get("billing_contact_email")),
            payment_terms_name=_text(get("payment_terms_name")),
            is_ghosting=bool(get("is_ghosting") or False),
            is_terminated=bool(get("is_terminated") or False),
            payment_status=_text(get("payment_status")) or DEFAULT_PAYMENT_STATUS,
            comments=_text(get("comments")),
        )


def load_invoices(db: Session, page_size: int = 1000) -> List[InvoiceRecord]:
    """Read every invoice, page by page, ordered by due date.

    Args:
        db (Session): SQLAlchemy Session object.
        page_size (int): Rows fetched per query.

    Returns:
        List[InvoiceRecord]: All invoices; rows without an ID are skipped.
    """
    records: List[InvoiceRecord] = []
    offset = 0
    while True:
        page = (
            db.query(Invoice)
            .order_by(Invoice.due_date.asc(), Invoice.invoice_id.asc())
            .offset(offset)
            .limit(page_size)
            .all()
        )
        for row in page:
            if row.invoice_id is None:
                logger.warning("Skipping invoice row without invoice_id")
                continue
            records.append(InvoiceRecord.from_row(row))
        if len(page) < page_size:
            break
        offset += page_size
    logger.info(f"Loaded {len(records)} invoices")
    return records


def load_synced_state(db: Session) -> Dict[int, Dict[str, Any]]:
    """Return invoice_id -> synced (authoritative + derived) column values."""
    columns = [Invoice.invoice_id] + [getattr(Invoice, c) for c in SYNCED_COLUMNS]
    state: Dict[int, Dict[str, Any]] = {}
    for row in db.query(*columns).all():
        values = row._asdict()
        invoice_id = values.pop("invoice_id")
        if invoice_id is not None:
            state[invoice_id] = values
    return state


def is_bootstrap_state(db: Session) -> bool:
    """True when stored rows predate the external-ID keying.

    A sampled row without a ``last_synced_at`` marker was loaded by the legacy
    import and cannot be trusted for delete-on-absence. An empty table is not a
    bootstrap state.
    """
    sample = db.query(Invoice.last_synced_at).limit(1).first()
    return sample is not None and sample.last_synced_at is None


def get_invoice(db: Session, invoice_id: int) -> Optional[Invoice]:
    return db.get(Invoice, invoice_id)
