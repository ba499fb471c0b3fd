import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from planner.models.product import Product
from planner.models.purchase import PurchaseOrderLine
from planner.utils.periods import current_period

logger = logging.getLogger(__name__)


def _require_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise LookupError(f"Product {product_id} not found")
    return product


def _validate_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    if year < 1:
        raise ValueError("year must be positive")


def _upsert_line(db: Session, product_id: int, year: int, month: int, quantity: Decimal) -> PurchaseOrderLine:
    line = (
        db.query(PurchaseOrderLine)
        .filter(
            PurchaseOrderLine.product_id == product_id,
            PurchaseOrderLine.year == year,
            PurchaseOrderLine.month == month,
        )
        .first()
    )
    if line is None:
        line = PurchaseOrderLine(product_id=product_id, year=year, month=month)
        db.add(line)
    line.quantity_to_buy = quantity
    return line


# ----------------------------------------------------------------------
# dashboard write path
# ----------------------------------------------------------------------


def save_purchase_orders(db: Session, items: Iterable[Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Upsert the current month's order line for each `{product_id, quantity}` item.

    Items pointing at unknown products are skipped and counted.
    """
    year, month = current_period(today)
    items = list(items)
    known = set()
    if items:
        requested = {item.product_id for item in items}
        known = {row.product_id for row in db.query(Product.product_id).filter(Product.product_id.in_(requested))}

    saved = 0
    skipped = 0
    for item in items:
        if item.product_id not in known:
            skipped += 1
            continue
        _upsert_line(db, item.product_id, year, month, Decimal(item.quantity))
        saved += 1
    db.commit()

    logger.info("Purchase orders saved", extra={"saved": saved, "skipped": skipped, "period": (year, month)})
    return {"saved": saved, "skipped": skipped, "year": year, "month": month}


def reset_current_month_orders(db: Session, today: Optional[date] = None) -> Dict[str, int]:
    year, month = current_period(today)
    deleted = (
        db.query(PurchaseOrderLine)
        .filter(PurchaseOrderLine.year == year, PurchaseOrderLine.month == month)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Current month purchase orders reset", extra={"deleted": deleted, "period": (year, month)})
    return {"deleted": deleted, "year": year, "month": month}


# ----------------------------------------------------------------------
# per-product CRUD
# ----------------------------------------------------------------------


def list_orders(
    db: Session,
    product_id: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    sku_prefix: Optional[str] = None,
) -> List[PurchaseOrderLine]:
    query = db.query(PurchaseOrderLine).join(Product).options(joinedload(PurchaseOrderLine.product))
    if product_id is not None:
        query = query.filter(PurchaseOrderLine.product_id == product_id)
    if year is not None:
        query = query.filter(PurchaseOrderLine.year == year)
    if month is not None:
        query = query.filter(PurchaseOrderLine.month == month)
    if sku_prefix:
        query = query.filter(Product.sku.startswith(sku_prefix.strip().upper()))
    return query.order_by(
        PurchaseOrderLine.year.desc(),
        PurchaseOrderLine.month.desc(),
        Product.sku.asc(),
    ).all()


def orders_for_product(db: Session, product_id: int) -> List[PurchaseOrderLine]:
    _require_product(db, product_id)
    return (
        db.query(PurchaseOrderLine)
        .filter(PurchaseOrderLine.product_id == product_id)
        .order_by(PurchaseOrderLine.year.desc(), PurchaseOrderLine.month.desc())
        .all()
    )


def upsert_order(db: Session, product_id: int, year: int, month: int, quantity: Decimal) -> PurchaseOrderLine:
    _validate_period(year, month)
    _require_product(db, product_id)
    line = _upsert_line(db, product_id, year, month, Decimal(quantity))
    db.commit()
    db.refresh(line)
    return line


def upsert_current_order(
    db: Session,
    product_id: int,
    quantity: Decimal,
    today: Optional[date] = None,
) -> PurchaseOrderLine:
    year, month = current_period(today)
    return upsert_order(db, product_id, year, month, quantity)


def delete_order(db: Session, product_id: int, year: int, month: int) -> None:
    line = (
        db.query(PurchaseOrderLine)
        .filter(
            PurchaseOrderLine.product_id == product_id,
            PurchaseOrderLine.year == year,
            PurchaseOrderLine.month == month,
        )
        .first()
    )
    if line is None:
        raise LookupError(f"No purchase order for product {product_id} in {year}-{month:02d}")
    db.delete(line)
    db.commit()
