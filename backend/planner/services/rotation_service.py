import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from planner.core.config import settings
from planner.models.purchase import PurchaseOrderLine
from planner.models.sales import CurrentMonthSale, HistoricalMonthlySale
from planner.utils.periods import Period, current_period, shift_month

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def latest_historical_period(db: Session) -> Optional[Period]:
    row = (
        db.query(HistoricalMonthlySale.year, HistoricalMonthlySale.month)
        .order_by(HistoricalMonthlySale.year.desc(), HistoricalMonthlySale.month.desc())
        .first()
    )
    return (row.year, row.month) if row else None


def needs_rotation(db: Session, today: Optional[date] = None) -> bool:
    """True when the newest historical month on file is not the current month. No history: False."""
    latest = latest_historical_period(db)
    if latest is None:
        return False
    return latest != current_period(today)


def rotate(db: Session, today: Optional[date] = None, period: Optional[Period] = None) -> Dict[str, int]:
    """
    Copy every current-month accumulator into history and zero its sales.

    Writes at the current (year, month) unless `period` is given. The whole pass
    is one transaction with a SAVEPOINT per product: a product that fails is
    rolled back on its own and counted, the rest commit together. stock_on_hand
    is preserved.
    """
    year, month = period or current_period(today)
    rows = db.query(CurrentMonthSale).order_by(CurrentMonthSale.product_id).all()
    if not rows:
        logger.info("No current-month sales to rotate")
        return {"rotated": 0, "errors": 0}

    history = {
        row.product_id: row
        for row in db.query(HistoricalMonthlySale).filter(
            HistoricalMonthlySale.year == year,
            HistoricalMonthlySale.month == month,
        )
    }

    rotated = 0
    errors = 0
    for current in rows:
        product_id = current.product_id
        try:
            with db.begin_nested():
                target = history.get(product_id)
                if target is None:
                    target = HistoricalMonthlySale(product_id=product_id, year=year, month=month)
                    db.add(target)
                target.quantity_sold = current.quantity_sold
                target.net_amount = current.net_amount
                current.quantity_sold = ZERO
                current.net_amount = ZERO
                current.through_date = None
                db.flush()
            history[product_id] = target
            rotated += 1
        except Exception:
            errors += 1
            history.pop(product_id, None)
            logger.error("Failed to rotate product", extra={"product_id": product_id}, exc_info=True)

    db.commit()
    logger.info("Rotation finished", extra={"rotated": rotated, "errors": errors, "period": (year, month)})
    return {"rotated": rotated, "errors": errors}


def prune_old_data(db: Session, today: Optional[date] = None, retention_months: Optional[int] = None) -> Dict[str, int]:
    """Delete history and purchase-order lines strictly older than the retention window."""
    retention = settings.RETENTION_MONTHS if retention_months is None else retention_months
    limit_year, limit_month = shift_month(*current_period(today), -retention)

    def older_than_limit(model):
        return or_(
            model.year < limit_year,
            and_(model.year == limit_year, model.month < limit_month),
        )

    sales_deleted = (
        db.query(HistoricalMonthlySale)
        .filter(older_than_limit(HistoricalMonthlySale))
        .delete(synchronize_session=False)
    )
    orders_deleted = (
        db.query(PurchaseOrderLine)
        .filter(older_than_limit(PurchaseOrderLine))
        .delete(synchronize_session=False)
    )
    db.commit()

    stats = {"historical_deleted": sales_deleted, "orders_deleted": orders_deleted}
    logger.info("Pruned data older than %02d/%d", limit_month, limit_year, extra={"stats": stats})
    return stats


def run_full_rotation(db: Session, today: Optional[date] = None) -> Dict[str, Any]:
    """rotate() then prune_old_data(), unconditionally. Callers gate on needs_rotation()."""
    logger.info("Starting full rotation")
    rotation = rotate(db, today=today)
    pruning = prune_old_data(db, today=today)
    return {"rotation": rotation, "pruning": pruning}


def check_and_rotate(db: Session, today: Optional[date] = None, force: bool = False) -> Dict[str, Any]:
    """Run the full rotation only when it is due (or forced)."""
    due = needs_rotation(db, today=today)
    if not (due or force):
        logger.info("Rotation not needed", extra={"period": current_period(today)})
        return {"needed": False, "executed": False}
    return {"needed": due, "executed": True, **run_full_rotation(db, today=today)}
