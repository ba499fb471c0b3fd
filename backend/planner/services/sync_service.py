import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from planner.core.config import settings
from planner.models.product import AUTO_CREATED_DESCRIPTION, Product
from planner.models.sales import CurrentMonthSale, HistoricalMonthlySale
from planner.models.sync_log import SyncType
from planner.services.document_extractor import extract_line_items, find_line_items
from planner.services.erp_client import CatalogProduct, ERPAuthenticationError, ERPClient
from planner.services.sales_aggregator import SaleTotals, aggregate_line_items
from planner.services.sync_log_service import record_sync
from planner.utils.periods import current_period, local_today, month_bounds, trailing_months

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class ExtractionFailureTracker:
    """Counts extraction failures in one run; only the first one dumps its payload."""

    def __init__(self):
        self.failures = 0
        self.first_dumped = False

    def record(self, document: Dict[str, Any], reason: str) -> None:
        self.failures += 1
        if self.first_dumped:
            return
        self.first_dumped = True
        logger.error(
            "First extraction failure in this run (%s); payload follows\n%s",
            reason,
            json.dumps(document, indent=2, default=str, ensure_ascii=False),
            extra={"docnumreg": document.get("docnumreg"), "kind": document.get("_doc_kind")},
        )


@dataclass
class SalesWindow:
    totals: Dict[str, SaleTotals] = field(default_factory=dict)
    document_count: int = 0
    hydrated_count: int = 0
    detail_failures: int = 0
    extraction_failures: int = 0


async def _hydrate_documents(
    client: ERPClient,
    documents: List[Dict[str, Any]],
    tracker: ExtractionFailureTracker,
    batch_size: int,
    batch_delay: float,
) -> Tuple[List[Dict[str, Any]], int]:
    """Fetch detail for documents listed without line items, in throttled batches."""
    hydrated: List[Dict[str, Any]] = []
    failures = 0

    for start in range(0, len(documents), batch_size):
        batch = documents[start : start + batch_size]
        results = await asyncio.gather(
            *(
                client.fetch_document_detail(document.get("docnumreg"), document["_doc_kind"])
                for document in batch
            ),
            return_exceptions=True,
        )
        for document, result in zip(batch, results):
            if isinstance(result, ERPAuthenticationError):
                raise result
            if isinstance(result, BaseException) or result is None:
                failures += 1
                tracker.record(document, f"detail unavailable: {result}" if result is not None else "detail unavailable")
                continue
            result["_doc_kind"] = document["_doc_kind"]
            hydrated.append(result)

        if start + batch_size < len(documents):
            await client.sleep(batch_delay)

    return hydrated, failures


async def fetch_sales_window(
    client: ERPClient,
    date_from: date,
    date_to: date,
    tracker: Optional[ExtractionFailureTracker] = None,
    batch_size: Optional[int] = None,
    batch_delay: Optional[float] = None,
) -> SalesWindow:
    """Per-SKU sales totals for [date_from, date_to] across every configured document kind."""
    tracker = tracker or ExtractionFailureTracker()
    batch_size = batch_size or settings.SYNC_DETAIL_BATCH_SIZE
    batch_delay = settings.SYNC_DETAIL_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay

    documents = await client.fetch_all_sales_documents(date_from, date_to)
    ready = [document for document in documents if find_line_items(document) is not None]
    missing = [document for document in documents if find_line_items(document) is None]

    window = SalesWindow(document_count=len(documents))
    if missing:
        logger.info("Hydrating documents without inline detail", extra={"count": len(missing)})
        hydrated, window.detail_failures = await _hydrate_documents(client, missing, tracker, batch_size, batch_delay)
        window.hydrated_count = len(hydrated)
        ready.extend(hydrated)

    before = tracker.failures
    for document in ready:
        items = extract_line_items(document)
        if not items:
            tracker.record(document, "no line items extracted")
            continue
        aggregate_line_items(items, window.totals)
    window.extraction_failures = tracker.failures - before

    logger.info(
        "Aggregated sales window",
        extra={
            "date_from": str(date_from),
            "date_to": str(date_to),
            "documents": window.document_count,
            "skus": len(window.totals),
            "detail_failures": window.detail_failures,
            "extraction_failures": window.extraction_failures,
        },
    )
    return window


def get_or_create_product(db: Session, sku: str, description: Optional[str] = None) -> Tuple[Product, bool]:
    product = db.query(Product).filter(Product.sku == sku).first()
    if product:
        return product, False
    product = Product(sku=sku, description=description or AUTO_CREATED_DESCRIPTION, family="")
    db.add(product)
    db.flush()
    logger.info("Auto-created product", extra={"sku": sku})
    return product, True


def _products_by_sku(db: Session, skus: Iterable[str]) -> Dict[str, Product]:
    wanted = list(set(skus))
    if not wanted:
        return {}
    found: Dict[str, Product] = {}
    # chunk to stay under bound-parameter limits
    for start in range(0, len(wanted), 500):
        chunk = wanted[start : start + 500]
        for product in db.query(Product).filter(Product.sku.in_(chunk)).all():
            found[product.sku] = product
    return found


def _resolve_sales_products(db: Session, skus: Iterable[str]) -> Tuple[Dict[str, Product], int]:
    """Every SKU seen in sales maps to a product; unknown ones are auto-created."""
    skus = list(skus)
    products = _products_by_sku(db, skus)
    created = 0
    for sku in skus:
        if sku not in products:
            products[sku], _ = get_or_create_product(db, sku)
            created += 1
    return products, created



# ----------------------------------------------------------------------
# product catalog
# ----------------------------------------------------------------------


def _persist_catalog(db: Session, catalog: List[CatalogProduct]) -> Dict[str, int]:
    existing = _products_by_sku(db, (item.sku for item in catalog))

    stats = {"fetched": len(catalog), "created": 0, "updated": 0, "unchanged": 0}
    for item in catalog:
        product = existing.get(item.sku)
        if product is None:
            product = Product(sku=item.sku, description=item.description, family=item.family)
            db.add(product)
            existing[item.sku] = product
            stats["created"] += 1
        elif product.description != item.description or (product.family or "") != item.family:
            product.description = item.description
            product.family = item.family
            stats["updated"] += 1
        else:
            stats["unchanged"] += 1
    db.commit()

    year, month = current_period()
    record_sync(
        db,
        SyncType.PRODUCT_CATALOG,
        year,
        month,
        product_count=stats["fetched"],
        message=f"created={stats['created']} updated={stats['updated']}",
    )
    logger.info("Product catalog synced", extra={"stats": stats})
    return stats


async def sync_product_catalog(db: Session, client: ERPClient) -> Dict[str, int]:
    """Create new catalog products and update changed description/family. Never deletes."""
    catalog = await client.fetch_product_catalog()
    return await asyncio.to_thread(_persist_catalog, db, catalog)


# ----------------------------------------------------------------------
# historical sales
# ----------------------------------------------------------------------


def _historical_rows(db: Session, year: int, month: int) -> Dict[int, HistoricalMonthlySale]:
    rows = db.query(HistoricalMonthlySale).filter(
        HistoricalMonthlySale.year == year,
        HistoricalMonthlySale.month == month,
    )
    return {row.product_id: row for row in rows}


def _persist_day_sales(db: Session, day: date, window: SalesWindow) -> Dict[str, Any]:
    products, created = _resolve_sales_products(db, window.totals.keys())
    rows = _historical_rows(db, day.year, day.month)

    for sku, totals in window.totals.items():
        product = products[sku]
        row = rows.get(product.product_id)
        if row is None:
            row = HistoricalMonthlySale(
                product_id=product.product_id,
                year=day.year,
                month=day.month,
                quantity_sold=ZERO,
                net_amount=ZERO,
            )
            db.add(row)
            rows[product.product_id] = row
        row.quantity_sold = Decimal(row.quantity_sold or 0) + totals.quantity
        row.net_amount = Decimal(row.net_amount or 0) + totals.net_amount
    db.commit()

    stats = {
        "date": day.isoformat(),
        "documents": window.document_count,
        "products_with_sales": len(window.totals),
        "products_created": created,
        "detail_failures": window.detail_failures,
        "extraction_failures": window.extraction_failures,
    }
    record_sync(
        db,
        SyncType.HISTORICAL_SALES,
        day.year,
        day.month,
        document_count=window.document_count,
        product_count=len(window.totals),
        products_with_sales_count=len(window.totals),
        message=f"day={day.isoformat()} mode=accumulate",
    )
    logger.info("Day sales synced", extra={"stats": stats})
    return stats


async def sync_day_sales(db: Session, client: ERPClient, day: date) -> Dict[str, Any]:
    """
    Add one day's sales onto that month's historical rows.

    Accumulates: syncing the same day twice counts it twice.
    """
    window = await fetch_sales_window(client, day, day)
    return await asyncio.to_thread(_persist_day_sales, db, day, window)


def _persist_full_month(db: Session, year: int, month: int, window: SalesWindow) -> Dict[str, Any]:
    products, created = _resolve_sales_products(db, window.totals.keys())
    rows = _historical_rows(db, year, month)

    touched: Set[int] = set()
    for sku, totals in window.totals.items():
        product = products[sku]
        row = rows.get(product.product_id)
        if row is None:
            row = HistoricalMonthlySale(product_id=product.product_id, year=year, month=month)
            db.add(row)
        row.quantity_sold = totals.quantity
        row.net_amount = totals.net_amount
        touched.add(product.product_id)

    removed = 0
    for product_id, row in rows.items():
        if product_id not in touched:
            db.delete(row)
            removed += 1
    db.commit()

    stats = {
        "year": year,
        "month": month,
        "documents": window.document_count,
        "products_with_sales": len(window.totals),
        "products_created": created,
        "rows_removed": removed,
        "detail_failures": window.detail_failures,
        "extraction_failures": window.extraction_failures,
    }
    record_sync(
        db,
        SyncType.HISTORICAL_SALES,
        year,
        month,
        document_count=window.document_count,
        product_count=len(window.totals),
        products_with_sales_count=len(window.totals),
        message="mode=replace",
    )
    logger.info("Full month synced", extra={"stats": stats})
    return stats


async def sync_full_month(
    db: Session,
    client: ERPClient,
    year: int,
    month: int,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Recompute one month of historical sales from the ERP.

    Replaces: each product's row is overwritten and rows for products without
    sales in the month are removed, so running it twice gives the same rows.
    """
    first, last = month_bounds(year, month)
    today = today or local_today()
    if first > today:
        raise ValueError(f"Cannot sync {year}-{month:02d}: month is in the future")
    last = min(last, today)

    window = await fetch_sales_window(client, first, last)
    return await asyncio.to_thread(_persist_full_month, db, year, month, window)


# ----------------------------------------------------------------------
# current month
# ----------------------------------------------------------------------


def _persist_current_month(
    db: Session,
    today: date,
    end: date,
    include_today: bool,
    window: SalesWindow,
    stock: Dict[str, Decimal],
) -> Dict[str, Any]:
    year, month = today.year, today.month
    products, created = _resolve_sales_products(db, window.totals.keys())
    stock_products = _products_by_sku(db, (sku for sku in stock if sku not in products))
    stock_unknown = sum(1 for sku in stock if sku not in products and sku not in stock_products)

    existing = {row.product_id: row for row in db.query(CurrentMonthSale).all()}
    touched: Set[int] = set()

    def upsert(product: Product, quantity: Decimal, amount: Decimal) -> None:
        row = existing.get(product.product_id)
        if row is None:
            row = CurrentMonthSale(product_id=product.product_id)
            db.add(row)
            existing[product.product_id] = row
        row.quantity_sold = quantity
        row.net_amount = amount
        row.stock_on_hand = stock.get(product.sku, ZERO)
        row.through_date = end
        touched.add(product.product_id)

    for sku, totals in window.totals.items():
        upsert(products[sku], totals.quantity, totals.net_amount)
    for sku, product in stock_products.items():
        if stock[sku] > 0:
            upsert(product, ZERO, ZERO)

    removed = 0
    for product_id, row in existing.items():
        if product_id not in touched:
            db.delete(row)
            removed += 1
    db.commit()

    stats = {
        "year": year,
        "month": month,
        "date_to": end.isoformat(),
        "include_today": include_today,
        "documents": window.document_count,
        "products_with_sales": len(window.totals),
        "products_created": created,
        "rows_written": len(touched),
        "rows_removed": removed,
        "stock_skus": len(stock),
        "stock_unknown_skus": stock_unknown,
        "detail_failures": window.detail_failures,
        "extraction_failures": window.extraction_failures,
    }
    record_sync(
        db,
        SyncType.CURRENT_MONTH_SALES,
        year,
        month,
        document_count=window.document_count,
        product_count=len(touched),
        products_with_sales_count=len(window.totals),
        message=f"through={end.isoformat()} include_today={include_today}",
    )
    logger.info("Current month synced", extra={"stats": stats})
    return stats


async def sync_current_month(
    db: Session,
    client: ERPClient,
    include_today: bool = False,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Rebuild the current-month accumulators and stock in one pass.

    Sales run from the 1st through yesterday (through now with `include_today`).
    Rows are upserted for every product seen in sales or holding stock; rows not
    touched by this pass are deleted in the same commit, so readers never see an
    empty table mid-sync. Each row records the last day it covers in
    `through_date`.
    """
    today = today or local_today()
    first = date(today.year, today.month, 1)
    end = today if include_today else today - timedelta(days=1)

    if end >= first:
        window = await fetch_sales_window(client, first, end)
    else:
        # 1st of the month: nothing closed yet
        window = SalesWindow()
    stock = await client.fetch_stock_snapshot(today)

    return await asyncio.to_thread(_persist_current_month, db, today, end, include_today, window, stock)


def _persist_stock(db: Session, today: date, stock: Dict[str, Decimal]) -> Dict[str, int]:
    products = _products_by_sku(db, stock.keys())
    existing = {row.product_id: row for row in db.query(CurrentMonthSale).all()}

    stats = {"stock_skus": len(stock), "updated": 0, "created": 0, "unknown_skus": 0}
    for row in existing.values():
        row.stock_on_hand = stock.get(row.product.sku, ZERO)
        stats["updated"] += 1
    for sku, quantity in stock.items():
        product = products.get(sku)
        if product is None:
            stats["unknown_skus"] += 1
            continue
        if product.product_id not in existing and quantity > 0:
            db.add(
                CurrentMonthSale(
                    product_id=product.product_id,
                    quantity_sold=ZERO,
                    net_amount=ZERO,
                    stock_on_hand=quantity,
                )
            )
            stats["created"] += 1
    db.commit()

    record_sync(
        db,
        SyncType.STOCK,
        today.year,
        today.month,
        product_count=stats["updated"] + stats["created"],
        message=f"unknown_skus={stats['unknown_skus']}",
    )
    logger.info("Stock refreshed", extra={"stats": stats})
    return stats


async def refresh_stock(db: Session, client: ERPClient, today: Optional[date] = None) -> Dict[str, int]:
    """Update stock_on_hand only; sales figures are left untouched."""
    today = today or local_today()
    stock = await client.fetch_stock_snapshot(today)
    return await asyncio.to_thread(_persist_stock, db, today, stock)


# ----------------------------------------------------------------------
# orchestration
# ----------------------------------------------------------------------


async def sync_yesterday(db: Session, client: ERPClient, today: Optional[date] = None) -> Dict[str, Any]:
    """Nightly run: catalog, yesterday's sales into history, then current-month data."""
    today = today or local_today()
    yesterday = today - timedelta(days=1)
    logger.info("Starting daily sync", extra={"day": yesterday.isoformat()})

    results = {
        "products": await sync_product_catalog(db, client),
        "day": await sync_day_sales(db, client, yesterday),
        "current_month": await sync_current_month(db, client, today=today),
    }
    logger.info("Daily sync finished", extra={"day": yesterday.isoformat()})
    return results


async def sync_initial(db: Session, client: ERPClient, months: int = 12, today: Optional[date] = None) -> Dict[str, Any]:
    """Backfill: catalog, the `months` previous full months oldest first, then the current month."""
    if months < 1:
        raise ValueError("months must be at least 1")
    today = today or local_today()
    logger.info("Starting initial sync", extra={"months": months})

    results: Dict[str, Any] = {"products": await sync_product_catalog(db, client), "months": []}
    for slot in trailing_months(months, today):
        results["months"].append(await sync_full_month(db, client, slot.year, slot.month, today=today))
    results["current_month"] = await sync_current_month(db, client, today=today)

    logger.info("Initial sync finished", extra={"months": months, "period": current_period(today)})
    return results
