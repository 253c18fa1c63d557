"""Key/value access to the system_settings table."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ar_aging.db.models import SystemSetting
from ar_aging.db.upsert import bulk_upsert

LAST_SYNC_KEY = "last_invoice_sync"


def get_setting(db: Session, key: str) -> Optional[str]:
    row = db.get(SystemSetting, key)
    return row.value if row else None


def put_setting(db: Session, key: str, value: str, updated_by: str) -> None:
    bulk_upsert(
        db,
        SystemSetting,
        [
            {
                "key": key,
                "value": value,
                "updated_by": updated_by,
                "updated_at": datetime.now(timezone.utc).replace(tzinfo=None),
            }
        ],
        conflict_columns=["key"],
    )


def get_last_sync_time(db: Session) -> Optional[datetime]:
    """Return the last successful sync time, or None if never synced or unreadable."""
    value = get_setting(db, LAST_SYNC_KEY)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def record_sync_time(db: Session, synced_at: datetime, updated_by: str) -> None:
    put_setting(db, LAST_SYNC_KEY, synced_at.isoformat(), updated_by)
