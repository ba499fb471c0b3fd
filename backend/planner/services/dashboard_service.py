import asyncio
import logging
from datetime import date, datetime, timezone
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from planner.models.product import Product
from planner.models.purchase import PurchaseOrderLine
from planner.models.sales import CurrentMonthSale, HistoricalMonthlySale
from planner.models.sync_log import SyncType
from planner.services.erp_client import ERPClient, ERPError
from planner.services.sales_aggregator import SaleTotals
from planner.services.sync_log_service import latest_sync
from planner.services.sync_service import fetch_sales_window
from planner.utils.periods import current_period, local_today, trailing_months

logger = logging.getLogger(__name__)

ALLOWED_WINDOWS = (3, 6, 12)
ZERO = Decimal("0")
CENT = Decimal("0.01")


def round_half_up(value: Decimal) -> int:
    """floor(x + 0.5): -40.5 rounds to -40, 70.5 to 71."""
    return int((value + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def suggested_purchase(average: Decimal, stock_on_hand: Decimal, current_month_sold: Decimal) -> int:
    """Negative means overstocked."""
    return round_half_up(average - stock_on_hand - current_month_sold)


def normalize_prefix(sku_prefix: Optional[str]) -> Optional[str]:
    if sku_prefix is None:
        return None
    cleaned = sku_prefix.strip().upper()
    return cleaned or None


async def fetch_live_today(client: Optional[ERPClient], today: date) -> Dict[str, SaleTotals]:
    """Today's ERP sales per SKU. Any ERP failure degrades to no live sales."""
    if client is None:
        return {}
    try:
        window = await fetch_sales_window(client, today, today)
    except (ERPError, httpx.HTTPError) as exc:
        logger.warning("Live sales for today unavailable, using persisted data only", extra={"error": str(exc)})
        return {}
    return window.totals


def _live_gap(accumulator: Optional[CurrentMonthSale], sku: str, live: Dict[str, SaleTotals], today: date) -> Decimal:
    """Live sales of today, unless the persisted row already covers today."""
    if sku not in live:
        return ZERO
    if accumulator is not None and accumulator.through_date is not None and accumulator.through_date >= today:
        return ZERO
    return live[sku].quantity


def assemble_dashboard(
    db: Session,
    window_months: int,
    prefix: Optional[str],
    today: date,
    live: Dict[str, SaleTotals],
) -> Dict[str, Any]:
    """The database half of the dashboard; `live` holds today's ERP sales per SKU."""
    year, month = current_period(today)
    slots = trailing_months(window_months, today)

    products_query = db.query(Product)
    if prefix:
        products_query = products_query.filter(Product.sku.startswith(prefix))
    products = products_query.order_by(Product.sku.asc()).all()

    window_filter = or_(*[and_(HistoricalMonthlySale.year == s.year, HistoricalMonthlySale.month == s.month) for s in slots])
    history_query = db.query(HistoricalMonthlySale).join(Product).filter(window_filter)
    current_query = db.query(CurrentMonthSale).join(Product)
    orders_query = (
        db.query(PurchaseOrderLine)
        .join(Product)
        .filter(PurchaseOrderLine.year == year, PurchaseOrderLine.month == month)
    )
    if prefix:
        history_query = history_query.filter(Product.sku.startswith(prefix))
        current_query = current_query.filter(Product.sku.startswith(prefix))
        orders_query = orders_query.filter(Product.sku.startswith(prefix))

    history = {(row.product_id, row.year, row.month): Decimal(row.quantity_sold) for row in history_query}
    current = {row.product_id: row for row in current_query}
    orders = {row.product_id: row for row in orders_query}

    rows = []
    for product in products:
        months = [
            {
                "year": slot.year,
                "month": slot.month,
                "label": slot.label,
                "quantity": history.get((product.product_id, slot.year, slot.month), ZERO),
            }
            for slot in slots
        ]
        # all window months count, including months without sales
        average = sum((m["quantity"] for m in months), ZERO) / Decimal(window_months)

        accumulator = current.get(product.product_id)
        persisted_sold = Decimal(accumulator.quantity_sold) if accumulator else ZERO
        stock_on_hand = Decimal(accumulator.stock_on_hand) if accumulator else ZERO
        live_today = _live_gap(accumulator, product.sku, live, today)
        current_month_sold = persisted_sold + live_today

        order = orders.get(product.product_id)
        rows.append(
            {
                "product": {
                    "product_id": product.product_id,
                    "sku": product.sku,
                    "description": product.description,
                    "family": product.family or "",
                },
                "months": months,
                "average": average.quantize(CENT, rounding=ROUND_HALF_UP),
                "current_month": {
                    "year": year,
                    "month": month,
                    "sold": current_month_sold,
                    "live_today": live_today,
                    "stock_on_hand": stock_on_hand,
                    "through_date": accumulator.through_date if accumulator else None,
                },
                "suggested_purchase": suggested_purchase(average, stock_on_hand, current_month_sold),
                # the user's decision, never defaulted from the suggestion
                "ordered_quantity": Decimal(order.quantity_to_buy) if order else None,
            }
        )

    return {
        "meta": {
            "window_months": window_months,
            "sku_prefix": prefix,
            "current_month": {"year": year, "month": month},
            "columns": [slot.label for slot in slots],
            "total_products": len(rows),
            "generated_at": datetime.now(timezone.utc),
        },
        "products": rows,
    }


async def build_dashboard(
    db: Session,
    client: Optional[ERPClient],
    window_months: int = 3,
    sku_prefix: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Per-product purchase view: trailing monthly sales, average, current month
    (persisted figures plus live sales of today not yet persisted), stock and
    suggested purchase.

    The ERP call runs on the event loop; the queries run in a worker thread.
    """
    if window_months not in ALLOWED_WINDOWS:
        raise ValueError(f"window_months must be one of {ALLOWED_WINDOWS}")

    today = today or local_today()
    live = await fetch_live_today(client, today)
    return await asyncio.to_thread(assemble_dashboard, db, window_months, normalize_prefix(sku_prefix), today, live)


def sync_status(db: Session) -> Dict[str, Any]:
    last_update = db.query(func.max(CurrentMonthSale.updated_at)).scalar()
    latest = {sync_type.value: latest_sync(db, sync_type) for sync_type in SyncType}
    return {
        "last_sync": last_update,
        "stats": {
            "products": db.query(Product).count(),
            "historical_sales": db.query(HistoricalMonthlySale).count(),
            "current_month_sales": db.query(CurrentMonthSale).count(),
        },
        "latest": latest,
    }
