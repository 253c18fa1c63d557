"""
Dialect-aware bulk upsert.

PostgreSQL and SQLite both support INSERT ... ON CONFLICT (...) DO UPDATE, so a
single statement per batch is emitted there. Other dialects fall back to a
query-then-update loop inside the caller's transaction.

The update set is explicit: only the columns named by the caller are
overwritten on conflict, which is how user-maintained invoice columns survive
a sync.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ar_aging.logging_config import get_logger

logger = get_logger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def bulk_upsert(
    db: Session,
    model: Type,
    rows: List[Dict[str, Any]],
    conflict_columns: Sequence[str],
    update_columns: Optional[Iterable[str]] = None,
) -> int:
    """Insert rows, updating the given columns where the conflict key already exists.

    Args:
        db (Session): Session owning the transaction.
        model (Type): Mapped class to write into.
        rows (List[Dict[str, Any]]): Column name -> value per record. All rows
            must carry the same keys.
        conflict_columns (Sequence[str]): Columns of the unique key to match on.
        update_columns (Iterable[str], optional): Columns to overwrite on conflict.
            Defaults to every non-key column present in the rows.

    Returns:
        int: Number of rows written.
    """
    if not rows:
        return 0

    if update_columns is None:
        update_columns = [k for k in rows[0] if k not in conflict_columns]
    update_columns = [c for c in update_columns if c not in conflict_columns]

    dialect = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        _merge_upsert(db, model, rows, conflict_columns, update_columns)
        logger.debug(f"Fallback upsert ({dialect}): {len(rows)} rows into {model.__tablename__}")
        return len(rows)

    stmt = insert(model).values(rows)
    if update_columns:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={c: stmt.excluded[c] for c in update_columns},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
    db.execute(stmt)
    logger.debug(f"{dialect} upsert: {len(rows)} rows into {model.__tablename__}")
    return len(rows)


def _merge_upsert(db, model, rows, conflict_columns, update_columns):
    for values in rows:
        key = {c: values[c] for c in conflict_columns}
        existing = db.query(model).filter_by(**key).first()
        if existing:
            for column in update_columns:
                setattr(existing, column, values[column])
        else:
            db.add(model(**values))
    db.flush()
