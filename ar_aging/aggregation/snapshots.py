"""Monthly per-region AR snapshots and KPI helpers."""

import calendar
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ar_aging.aging.classifier import to_utc_date
from ar_aging.aggregation.filters import REGIONS, filter_region
from ar_aging.aggregation.summary import AMOUNT_COLUMNS, COUNT_COLUMNS, breakdown, summarize
from ar_aging.db.invoices import InvoiceRecord
from ar_aging.db.models import MonthlySnapshot
from ar_aging.db.upsert import bulk_upsert
from ar_aging.logging_config import get_logger
from ar_aging.metrics import measure_duration, snapshot_duration_seconds

logger = get_logger(__name__)

TOP_COMPANIES = 20


@dataclass
class SnapshotData:
    """Point-in-time aggregate for one region, shaped like a monthly_ar_snapshots row."""

    snapshot_date: date
    region: str
    total_outstanding: float = 0.0
    invoice_count: int = 0
    aging_1_30: float = 0.0
    aging_31_60: float = 0.0
    aging_61_90: float = 0.0
    aging_91_120: float = 0.0
    aging_121_plus: float = 0.0
    count_1_30: int = 0
    count_31_60: int = 0
    count_61_90: int = 0
    count_91_120: int = 0
    count_121_plus: int = 0
    company_breakdown: List[Dict] = field(default_factory=list)

    def to_row(self) -> Dict:
        return asdict(self)


def last_day_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def build_snapshot(records: Iterable[InvoiceRecord], region: str, snapshot_date) -> SnapshotData:
    """Aggregate the records of ``region`` into a snapshot for ``snapshot_date``.

    Totals and counts match ``summarize``; the company breakdown holds the top
    companies by outstanding total.

    Raises:
        ValueError: If the region is unknown or the date is unparseable.
    """
    snapshot_day = to_utc_date(snapshot_date)
    if snapshot_day is None:
        raise ValueError(f"Invalid snapshot date: {snapshot_date!r}")
    scoped = filter_region(records, region)
    summary = summarize(scoped)

    data = SnapshotData(
        snapshot_date=snapshot_day,
        region=region,
        total_outstanding=summary["all"].value,
        invoice_count=summary["all"].count,
    )
    for bucket_id, amount_column, count_column in zip(
        ("1-30", "31-60", "61-90", "91-120", "121+"), AMOUNT_COLUMNS, COUNT_COLUMNS
    ):
        setattr(data, amount_column, summary[bucket_id].value)
        setattr(data, count_column, summary[bucket_id].count)

    companies = breakdown(scoped, group_by="company", sort_by="total")[:TOP_COMPANIES]
    data.company_breakdown = [
        dict(
            company=group.key,
            total=group.total,
            count=group.count,
            **{c: getattr(group, c) for c in AMOUNT_COLUMNS},
        )
        for group in companies
    ]
    return data


def save_snapshot(db: Session, data: SnapshotData, created_by: str) -> None:
    """Insert or overwrite the snapshot for (snapshot_date, region)."""
    row = data.to_row()
    row["created_by"] = created_by
    bulk_upsert(db, MonthlySnapshot, [row], ["snapshot_date", "region"])
    logger.info(
        f"Saved snapshot for {data.snapshot_date.isoformat()}: "
        f"{data.invoice_count} invoices, {data.total_outstanding:.2f} outstanding",
        extra={"region": data.region},
    )


@measure_duration(snapshot_duration_seconds)
def create_monthly_snapshots(
    db: Session,
    records: List[InvoiceRecord],
    created_by: str,
    snapshot_date: Optional[date] = None,
) -> List[SnapshotData]:
    """Build and save one snapshot per region.

    Args:
        db (Session): SQLAlchemy Session object.
        records (List[InvoiceRecord]): Current invoices.
        created_by (str): Caller identity recorded on each row.
        snapshot_date (date, optional): Defaults to the last day of the current month.

    Returns:
        List[SnapshotData]: The saved snapshots, in REGIONS order.
    """
    snapshot_date = snapshot_date or last_day_of_month(date.today())
    snapshots = []
    for region in REGIONS:
        data = build_snapshot(records, region, snapshot_date)
        save_snapshot(db, data, created_by)
        snapshots.append(data)
    logger.info(f"Snapshots created for date: {to_utc_date(snapshot_date)}")
    return snapshots


def list_snapshots(db: Session, region: Optional[str] = None) -> List[MonthlySnapshot]:
    """Saved snapshots, newest first, optionally for one region."""
    query = db.query(MonthlySnapshot)
    if region is not None:
        query = query.filter(MonthlySnapshot.region == region)
    return query.order_by(MonthlySnapshot.snapshot_date.desc(), MonthlySnapshot.region.asc()).all()


def month_over_month_change(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Percentage change from ``previous`` to ``current``; None without a usable baseline."""
    if not previous or current is None:
        return None
    return round((current - previous) / previous * 100, 1)
