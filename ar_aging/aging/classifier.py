"""Day-based aging classification.

Past-due days are counted between calendar dates in UTC, so the wall-clock
time and timezone of the caller never shift an invoice between buckets.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Optional

import pandas as pd


class AgingBucket(str, Enum):
    CURRENT = "Current"
    DAYS_1_30 = "1-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_91_120 = "91-120"
    DAYS_121_PLUS = "121+"


# Past-due buckets in ascending order with the invoice column holding their amount.
BUCKET_COLUMNS: Dict[AgingBucket, str] = {
    AgingBucket.DAYS_1_30: "aging_1_30",
    AgingBucket.DAYS_31_60: "aging_31_60",
    AgingBucket.DAYS_61_90: "aging_61_90",
    AgingBucket.DAYS_91_120: "aging_91_120",
    AgingBucket.DAYS_121_PLUS: "aging_121_plus",
}

# (exclusive lower bound in days, bucket), checked from the oldest down.
_THRESHOLDS = (
    (120, AgingBucket.DAYS_121_PLUS),
    (90, AgingBucket.DAYS_91_120),
    (60, AgingBucket.DAYS_61_90),
    (30, AgingBucket.DAYS_31_60),
    (0, AgingBucket.DAYS_1_30),
)

NOT_PAST_DUE = "Not Past Due"


@dataclass(frozen=True)
class AgingResult:
    past_due_days: int
    bucket: AgingBucket
    aging_category: str


CURRENT_RESULT = AgingResult(0, AgingBucket.CURRENT, NOT_PAST_DUE)


def to_utc_date(value) -> Optional[date]:
    """Reduce a date, datetime or date string to its UTC calendar date.

    Naive datetimes and strings without an offset are taken as UTC.
    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        ts = pd.to_datetime(value.strip(), errors="coerce", utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.date()


def classify(due_date, as_of=None) -> AgingResult:
    """Classify an invoice by how far past its due date it is.

    Args:
        due_date: Due date as date, datetime or string; None when unknown.
        as_of: Reference point (date or datetime). Defaults to now in UTC.

    Returns:
        AgingResult: Past-due days (never negative), bucket and category label.
            Missing or unparseable due dates classify as Current.
    """
    due = to_utc_date(due_date)
    if due is None:
        return CURRENT_RESULT
    today = to_utc_date(as_of if as_of is not None else datetime.now(timezone.utc))
    if today is None:
        return CURRENT_RESULT

    days = (today - due).days
    for lower, bucket in _THRESHOLDS:
        if days > lower:
            return AgingResult(days, bucket, f"Aging {bucket.value}")
    return CURRENT_RESULT


def bucket_amounts(bucket: AgingBucket, amount_remaining: float) -> Dict[str, float]:
    """Split amount_remaining across the five bucket columns.

    Exactly the column matching ``bucket`` carries the amount; Current invoices
    have all five at zero.
    """
    return {
        column: (amount_remaining if bucket == b else 0.0)
        for b, column in BUCKET_COLUMNS.items()
    }
