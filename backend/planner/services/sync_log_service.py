import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from planner.models.sync_log import SyncLogEntry, SyncType

logger = logging.getLogger(__name__)


def record_sync(
    db: Session,
    sync_type: SyncType,
    target_year: int,
    target_month: int,
    document_count: int = 0,
    product_count: int = 0,
    products_with_sales_count: int = 0,
    message: Optional[str] = None,
) -> SyncLogEntry | None:
    """Append an audit entry. Best effort: a failed write is logged and never raised."""
    entry = SyncLogEntry(
        sync_type=SyncType(sync_type).value,
        target_year=target_year,
        target_month=target_month,
        document_count=document_count,
        product_count=product_count,
        products_with_sales_count=products_with_sales_count,
        message=message,
    )
    try:
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except Exception:
        db.rollback()
        logger.error("Failed to write sync log entry", extra={"sync_type": entry.sync_type}, exc_info=True)
        return None
    return entry


def list_sync_logs(
    db: Session,
    limit: int = 50,
    offset: int = 0,
    sync_type: Optional[SyncType] = None,
) -> List[SyncLogEntry]:
    query = db.query(SyncLogEntry)
    if sync_type is not None:
        query = query.filter(SyncLogEntry.sync_type == SyncType(sync_type).value)
    return (
        query.order_by(SyncLogEntry.created_at.desc(), SyncLogEntry.log_id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def count_sync_logs(db: Session, sync_type: Optional[SyncType] = None) -> int:
    query = db.query(SyncLogEntry)
    if sync_type is not None:
        query = query.filter(SyncLogEntry.sync_type == SyncType(sync_type).value)
    return query.count()


def latest_sync(db: Session, sync_type: SyncType) -> SyncLogEntry | None:
    return (
        db.query(SyncLogEntry)
        .filter(SyncLogEntry.sync_type == SyncType(sync_type).value)
        .order_by(SyncLogEntry.created_at.desc(), SyncLogEntry.log_id.desc())
        .first()
    )
