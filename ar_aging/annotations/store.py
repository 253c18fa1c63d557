"""Notes, follow-ups, property notes and local invoice fields.

Every operation works inside the caller's session (one ``get_db_session``
block per user action) and is attributed to a caller identity. Notes and
follow-ups reference invoices by external invoice_id, so a sync never touches
them.

Follow-up lifecycle::

    open --complete--> completed --reopen--> open
    open/completed --delete--> gone

Text and date edits are only accepted while a follow-up is open.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ar_aging.aging.classifier import to_utc_date
from ar_aging.db.models import FollowUp, Invoice, InvoiceNote, PropertyNote
from ar_aging.errors import AnnotationError, FollowUpStateError, NotFoundError
from ar_aging.logging_config import get_logger

logger = get_logger(__name__)


class PaymentStatus(str, Enum):
    NO_CONTACT = "No Contact"
    PAYMENT_EN_ROUTE = "Payment En Route"
    PAYMENT_PROCESSING = "Payment Processing"
    IN_COMMUNICATION = "In Communication"
    NO_FOLLOW_UP = "No Follow Up"


FOLLOW_UP_STATUSES = ("open", "completed", "all")


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _require_text(text: Optional[str], what: str = "Note text") -> str:
    if text is None or not text.strip():
        raise AnnotationError(f"{what} is required")
    return text.strip()


def _require_author(created_by: Optional[str]) -> str:
    if not created_by or not created_by.strip():
        raise AnnotationError("An author identity is required")
    return created_by.strip()


def _require_date(value) -> date:
    day = to_utc_date(value)
    if day is None:
        raise AnnotationError(f"Invalid follow-up date: {value!r}")
    return day


def _get(db: Session, model, key, label: str):
    row = db.get(model, key)
    if row is None:
        raise NotFoundError(f"{label} {key} not found")
    return row


# Notes


def add_note(db: Session, invoice_id: int, note_text: str, created_by: str) -> InvoiceNote:
    note = InvoiceNote(
        invoice_id=invoice_id,
        note_text=_require_text(note_text),
        created_by=_require_author(created_by),
        created_at=_now(),
        is_follow_up=False,
        follow_up_date=None,
    )
    db.add(note)
    db.flush()
    logger.info(f"Note {note.id} added to invoice {invoice_id}", extra={"caller": note.created_by})
    return note


def edit_note(db: Session, note_id: int, note_text: str) -> InvoiceNote:
    """Replace a note's text. Author and timestamp are kept."""
    note = _get(db, InvoiceNote, note_id, "Note")
    note.note_text = _require_text(note_text)
    db.flush()
    return note


def delete_note(db: Session, note_id: int) -> None:
    note = _get(db, InvoiceNote, note_id, "Note")
    db.delete(note)
    db.flush()
    logger.info(f"Note {note_id} deleted")


def notes_for_invoice(db: Session, invoice_id: int) -> List[InvoiceNote]:
    """Notes on one invoice, newest first."""
    return (
        db.query(InvoiceNote)
        .filter(InvoiceNote.invoice_id == invoice_id)
        .order_by(InvoiceNote.created_at.desc(), InvoiceNote.id.desc())
        .all()
    )


# Follow-ups


def add_follow_up(
    db: Session, invoice_id: int, note_text: str, follow_up_date, created_by: str
) -> FollowUp:
    """Schedule a follow-up, copying the invoice's display fields onto it.

    Raises:
        NotFoundError: If the invoice does not exist.
        AnnotationError: On empty text, missing author or an invalid date.
    """
    invoice = _get(db, Invoice, invoice_id, "Invoice")
    follow_up = FollowUp(
        invoice_id=invoice_id,
        note_id=None,
        invoice_number=invoice.invoice_number or "",
        company_name=invoice.company_name or "",
        property_name=invoice.property_name or "",
        amount=invoice.amount_remaining or 0,
        note_text=_require_text(note_text),
        follow_up_date=_require_date(follow_up_date),
        created_by=_require_author(created_by),
        created_at=_now(),
        completed=False,
        completed_at=None,
    )
    db.add(follow_up)
    db.flush()
    logger.info(
        f"Follow-up {follow_up.id} scheduled for invoice {invoice_id} on {follow_up.follow_up_date}",
        extra={"caller": follow_up.created_by},
    )
    return follow_up


def edit_follow_up(db: Session, follow_up_id: int, note_text: str, follow_up_date) -> FollowUp:
    """Change an open follow-up's text and date.

    Raises:
        FollowUpStateError: If the follow-up is completed.
    """
    follow_up = _get(db, FollowUp, follow_up_id, "Follow-up")
    if follow_up.completed:
        raise FollowUpStateError(f"Follow-up {follow_up_id} is completed; reopen it before editing")
    follow_up.note_text = _require_text(note_text)
    follow_up.follow_up_date = _require_date(follow_up_date)
    db.flush()
    return follow_up


def complete_follow_up(db: Session, follow_up_id: int) -> FollowUp:
    follow_up = _get(db, FollowUp, follow_up_id, "Follow-up")
    if follow_up.completed:
        raise FollowUpStateError(f"Follow-up {follow_up_id} is already completed")
    follow_up.completed = True
    follow_up.completed_at = _now()
    db.flush()
    logger.info(f"Follow-up {follow_up_id} completed")
    return follow_up


def reopen_follow_up(db: Session, follow_up_id: int) -> FollowUp:
    follow_up = _get(db, FollowUp, follow_up_id, "Follow-up")
    if not follow_up.completed:
        raise FollowUpStateError(f"Follow-up {follow_up_id} is not completed")
    follow_up.completed = False
    follow_up.completed_at = None
    db.flush()
    logger.info(f"Follow-up {follow_up_id} reopened")
    return follow_up


def toggle_follow_up(db: Session, follow_up_id: int) -> FollowUp:
    """Complete an open follow-up or reopen a completed one."""
    follow_up = _get(db, FollowUp, follow_up_id, "Follow-up")
    if follow_up.completed:
        return reopen_follow_up(db, follow_up_id)
    return complete_follow_up(db, follow_up_id)


def delete_follow_up(db: Session, follow_up_id: int) -> None:
    follow_up = _get(db, FollowUp, follow_up_id, "Follow-up")
    db.delete(follow_up)
    db.flush()
    logger.info(f"Follow-up {follow_up_id} deleted")


def list_follow_ups(
    db: Session, status: str = "open", created_by: Optional[str] = None
) -> List[FollowUp]:
    """Follow-ups for the follow-up views.

    Open ones are ordered by follow-up date, soonest first. Completed ones are
    ordered by completion time (creation time when unset), most recent first.
    "all" returns open followed by completed.
    """
    if status not in FOLLOW_UP_STATUSES:
        raise ValueError(f"Unknown follow-up status: {status!r}")
    query = db.query(FollowUp)
    if created_by:
        query = query.filter(FollowUp.created_by == created_by)
    rows = query.all()

    open_items = sorted(
        (f for f in rows if not f.completed), key=lambda f: (f.follow_up_date, f.id)
    )
    completed_items = sorted(
        (f for f in rows if f.completed),
        key=lambda f: (f.completed_at or f.created_at, f.id),
        reverse=True,
    )
    if status == "open":
        return open_items
    if status == "completed":
        return completed_items
    return open_items + completed_items


def follow_up_authors(db: Session) -> List[str]:
    rows = db.query(FollowUp.created_by).distinct().all()
    return sorted(r.created_by for r in rows if r.created_by)


def follow_ups_for_invoice(db: Session, invoice_id: int) -> List[FollowUp]:
    return (
        db.query(FollowUp)
        .filter(FollowUp.invoice_id == invoice_id)
        .order_by(FollowUp.follow_up_date.asc(), FollowUp.id.asc())
        .all()
    )


# Property notes


def save_property_note(db: Session, property_name: str, note_text: str, updated_by: str) -> PropertyNote:
    """Create or replace the single note for ``property_name``."""
    property_name = _require_text(property_name, "Property name")
    note = db.query(PropertyNote).filter(PropertyNote.property_name == property_name).first()
    if note is None:
        note = PropertyNote(property_name=property_name)
        db.add(note)
    note.note_text = _require_text(note_text)
    note.updated_by = _require_author(updated_by)
    note.updated_at = _now()
    db.flush()
    logger.info(f"Property note saved for {property_name}", extra={"caller": note.updated_by})
    return note


def get_property_note(db: Session, property_name: str) -> Optional[PropertyNote]:
    return db.query(PropertyNote).filter(PropertyNote.property_name == property_name).first()


def property_notes_map(db: Session) -> Dict[str, PropertyNote]:
    return {n.property_name: n for n in db.query(PropertyNote).all()}


def delete_property_note(db: Session, property_name: str) -> None:
    note = get_property_note(db, property_name)
    if note is None:
        raise NotFoundError(f"No note for property {property_name!r}")
    db.delete(note)
    db.flush()


# Local invoice fields


def set_ghosting(db: Session, invoice_id: int, value: bool) -> Invoice:
    invoice = _get(db, Invoice, invoice_id, "Invoice")
    invoice.is_ghosting = bool(value)
    db.flush()
    return invoice


def set_terminated(db: Session, invoice_id: int, value: bool) -> Invoice:
    invoice = _get(db, Invoice, invoice_id, "Invoice")
    invoice.is_terminated = bool(value)
    db.flush()
    return invoice


def set_payment_status(db: Session, invoice_id: int, status) -> Invoice:
    """Set the payment status.

    Raises:
        AnnotationError: If ``status`` is not a PaymentStatus value.
    """
    try:
        status = PaymentStatus(status)
    except ValueError:
        raise AnnotationError(f"Unknown payment status: {status!r}")
    invoice = _get(db, Invoice, invoice_id, "Invoice")
    invoice.payment_status = status.value
    db.flush()
    logger.info(f"Invoice {invoice_id} payment status set to {status.value}")
    return invoice


def set_comments(db: Session, invoice_id: int, comments: Optional[str]) -> Invoice:
    invoice = _get(db, Invoice, invoice_id, "Invoice")
    invoice.comments = comments or ""
    db.flush()
    return invoice


# History


@dataclass(frozen=True)
class HistoryItem:
    """One entry of an invoice's activity history."""

    kind: str
    item_id: int
    text: str
    created_by: str
    created_at: datetime
    follow_up_date: Optional[date] = None
    completed: bool = False
    completed_at: Optional[datetime] = None


def invoice_history(
    notes: Iterable[InvoiceNote], follow_ups: Iterable[FollowUp]
) -> List[HistoryItem]:
    """Merge notes and follow-ups into one list, newest first."""
    items = [
        HistoryItem(
            kind="note",
            item_id=n.id,
            text=n.note_text,
            created_by=n.created_by,
            created_at=n.created_at,
        )
        for n in notes
    ]
    items.extend(
        HistoryItem(
            kind="follow_up",
            item_id=f.id,
            text=f.note_text,
            created_by=f.created_by,
            created_at=f.created_at,
            follow_up_date=f.follow_up_date,
            completed=bool(f.completed),
            completed_at=f.completed_at,
        )
        for f in follow_ups
    )
    return sorted(items, key=lambda i: (i.created_at or datetime.min, i.item_id), reverse=True)


def history_for_invoice(db: Session, invoice_id: int) -> List[HistoryItem]:
    return invoice_history(notes_for_invoice(db, invoice_id), follow_ups_for_invoice(db, invoice_id))
