import logging
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from planner.models.product import Product
from planner.models.purchase import PurchaseOrderLine
from planner.models.sales import CurrentMonthSale, HistoricalMonthlySale
from planner.services.dashboard_service import normalize_prefix
from planner.utils.periods import current_period, trailing_months

logger = logging.getLogger(__name__)

MAX_MONTHS = 12
ZERO = Decimal("0")
CENT = Decimal("0.01")


def _validate_months(months: int) -> None:
    if not 1 <= months <= MAX_MONTHS:
        raise ValueError(f"months must be between 1 and {MAX_MONTHS}")


def _summary(product: Product) -> Dict[str, Any]:
    return {
        "product_id": product.product_id,
        "sku": product.sku,
        "description": product.description,
        "family": product.family or "",
    }


def _sale(row: HistoricalMonthlySale) -> Dict[str, Any]:
    return {
        "year": row.year,
        "month": row.month,
        "quantity_sold": Decimal(row.quantity_sold),
        "net_amount": Decimal(row.net_amount),
    }


def _averages(sales: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Averages over the months that have a row; months without sales are not counted."""
    count = len(sales)
    if not count:
        return {"average_quantity": ZERO, "average_amount": ZERO, "months_with_sales": 0}
    quantity = sum((s["quantity_sold"] for s in sales), ZERO) / count
    amount = sum((s["net_amount"] for s in sales), ZERO) / count
    return {
        "average_quantity": quantity.quantize(CENT, rounding=ROUND_HALF_UP),
        "average_amount": amount.quantize(CENT, rounding=ROUND_HALF_UP),
        "months_with_sales": count,
    }


def _since(model, year: int, month: int):
    return or_(model.year > year, and_(model.year == year, model.month >= month))


def _window_filter(months: int, today: Optional[date]):
    """The `months` closed months before the current one."""
    first = trailing_months(months, today)[0]
    year, month = current_period(today)
    before_current = or_(
        HistoricalMonthlySale.year < year,
        and_(HistoricalMonthlySale.year == year, HistoricalMonthlySale.month < month),
    )
    return first, and_(before_current, _since(HistoricalMonthlySale, first.year, first.month))


def historical_sales(
    db: Session,
    months: int = MAX_MONTHS,
    sku_prefix: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Monthly sales per product over the trailing window, newest month first."""
    _validate_months(months)
    prefix = normalize_prefix(sku_prefix)
    _, window = _window_filter(months, today)

    query = db.query(HistoricalMonthlySale).join(Product).filter(window)
    if prefix:
        query = query.filter(Product.sku.startswith(prefix))
    rows = query.order_by(
        Product.sku.asc(),
        HistoricalMonthlySale.year.desc(),
        HistoricalMonthlySale.month.desc(),
    ).all()

    grouped: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        entry = grouped.setdefault(row.product_id, {"product": _summary(row.product), "sales": []})
        entry["sales"].append(_sale(row))

    products = [{**entry, **_averages(entry["sales"])} for entry in grouped.values()]
    return {"months": months, "sku_prefix": prefix, "total_products": len(products), "products": products}


def current_sales(db: Session, sku_prefix: Optional[str] = None) -> Dict[str, Any]:
    """Current-month accumulators: units sold, net amount and stock on hand."""
    prefix = normalize_prefix(sku_prefix)
    query = db.query(CurrentMonthSale).join(Product)
    if prefix:
        query = query.filter(Product.sku.startswith(prefix))

    products = [
        {
            "product": _summary(row.product),
            "quantity_sold": Decimal(row.quantity_sold),
            "net_amount": Decimal(row.net_amount),
            "stock_on_hand": Decimal(row.stock_on_hand),
            "through_date": row.through_date,
        }
        for row in query.order_by(Product.sku.asc())
    ]
    return {"sku_prefix": prefix, "total_products": len(products), "products": products}


def product_overview(
    db: Session,
    months: int = MAX_MONTHS,
    sku_prefix: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Every product with its window history, current-month figures and order
    lines from the start of the window on.

    Products without a current-month row report zeros; `current_order` is the
    current month's order quantity or None when nothing was saved.
    """
    _validate_months(months)
    prefix = normalize_prefix(sku_prefix)
    year, month = current_period(today)
    first, window = _window_filter(months, today)

    products_query = db.query(Product)
    if prefix:
        products_query = products_query.filter(Product.sku.startswith(prefix))
    products = products_query.order_by(Product.sku.asc()).all()
    ids = [product.product_id for product in products]

    history: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    current: Dict[int, CurrentMonthSale] = {}
    orders: Dict[int, List[PurchaseOrderLine]] = defaultdict(list)
    if ids:
        for row in (
            db.query(HistoricalMonthlySale)
            .filter(HistoricalMonthlySale.product_id.in_(ids), window)
            .order_by(HistoricalMonthlySale.year.desc(), HistoricalMonthlySale.month.desc())
        ):
            history[row.product_id].append(_sale(row))
        current = {
            row.product_id: row
            for row in db.query(CurrentMonthSale).filter(CurrentMonthSale.product_id.in_(ids))
        }
        for row in (
            db.query(PurchaseOrderLine)
            .filter(
                PurchaseOrderLine.product_id.in_(ids),
                _since(PurchaseOrderLine, first.year, first.month),
            )
            .order_by(PurchaseOrderLine.year.desc(), PurchaseOrderLine.month.desc())
        ):
            orders[row.product_id].append(row)

    rows = []
    for product in products:
        sales = history[product.product_id]
        accumulator = current.get(product.product_id)
        lines = orders[product.product_id]
        current_order = next((o for o in lines if o.year == year and o.month == month), None)
        rows.append(
            {
                "product": _summary(product),
                "sales": sales,
                **_averages(sales),
                "current_month": {
                    "quantity_sold": Decimal(accumulator.quantity_sold) if accumulator else ZERO,
                    "net_amount": Decimal(accumulator.net_amount) if accumulator else ZERO,
                    "stock_on_hand": Decimal(accumulator.stock_on_hand) if accumulator else ZERO,
                    "through_date": accumulator.through_date if accumulator else None,
                },
                "orders": [
                    {"year": o.year, "month": o.month, "quantity_to_buy": Decimal(o.quantity_to_buy)} for o in lines
                ],
                "current_order": Decimal(current_order.quantity_to_buy) if current_order else None,
            }
        )

    logger.debug("Product overview built", extra={"months": months, "products": len(rows)})
    return {
        "months": months,
        "sku_prefix": prefix,
        "current_period": {"year": year, "month": month},
        "total_products": len(rows),
        "products": rows,
    }
