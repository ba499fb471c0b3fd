import json
import logging
from typing import AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from planner.deps import get_db, get_erp_client, get_session_factory
from planner.models.sync_log import SyncType
from planner.schemas.dashboard import (
    DashboardOut,
    ResetOrdersOut,
    SaveOrdersOut,
    SaveOrdersRequest,
    SyncStatusOut,
)
from planner.schemas.sync_log import SyncHistoryOut
from planner.services.dashboard_service import build_dashboard, sync_status
from planner.services.erp_client import ERPClient
from planner.services.purchase_service import reset_current_month_orders, save_purchase_orders
from planner.services.sync_log_service import count_sync_logs, list_sync_logs
from planner.services.sync_service import sync_current_month, sync_product_catalog

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "",
    response_model=DashboardOut,
    summary="Purchase dashboard: trailing sales, stock and suggested purchase per product",
)
async def get_dashboard(
    window_months: int = Query(3, description="Trailing months to average: 3, 6 or 12"),
    sku_prefix: Optional[str] = Query(None, description="Only SKUs starting with this prefix"),
    db: Session = Depends(get_db),
    client: Optional[ERPClient] = Depends(get_erp_client),
):
    try:
        return await build_dashboard(db, client, window_months=window_months, sku_prefix=sku_prefix)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception as exc:
        logger.error("Error building dashboard: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error while building dashboard: {exc}",
        )


@router.post(
    "/orders",
    response_model=SaveOrdersOut,
    summary="Save current-month purchase quantities",
)
def save_orders(payload: SaveOrdersRequest, db: Session = Depends(get_db)):
    return save_purchase_orders(db, payload.items)


@router.delete(
    "/orders/reset",
    response_model=ResetOrdersOut,
    summary="Delete every purchase-order line of the current month",
)
def reset_orders(db: Session = Depends(get_db)):
    return reset_current_month_orders(db)


@router.get(
    "/sync-status",
    response_model=SyncStatusOut,
    summary="Last sync time and table counts",
)
def get_sync_status(db: Session = Depends(get_db)):
    return sync_status(db)


@router.get(
    "/sync-history",
    response_model=SyncHistoryOut,
    summary="Sync log, newest first (paged)",
)
def get_sync_history(
    limit: int = 50,
    offset: int = 0,
    sync_type: Optional[SyncType] = None,
    db: Session = Depends(get_db),
):
    limit = min(max(limit, 1), 500)
    offset = max(offset, 0)
    return {
        "logs": list_sync_logs(db, limit=limit, offset=offset, sync_type=sync_type),
        "total": count_sync_logs(db, sync_type=sync_type),
        "limit": limit,
        "offset": offset,
    }


def _event(step: str, message: str, **data) -> str:
    payload = {"step": step, "message": message, **data}
    return f"data: {json.dumps(payload, default=str)}\n\n"


async def stream_sync_events(
    client: Optional[ERPClient],
    session_factory: Callable[[], Session],
) -> AsyncIterator[str]:
    """Catalog sync then current-month sync (through now), reported step by step."""
    db = session_factory()
    try:
        yield _event("start", "Connecting to ERP")
        if client is None:
            raise RuntimeError("ERP is not configured")

        yield _event("products", "Syncing product catalog")
        products = await sync_product_catalog(db, client)
        yield _event(
            "products_done",
            f"Catalog: {products['created']} new, {products['updated']} updated",
            stats=products,
        )

        yield _event("data", "Fetching current month sales and stock")
        data = await sync_current_month(db, client, include_today=True)
        yield _event(
            "data_done",
            f"{data['products_with_sales']} products with sales, {data['rows_written']} rows updated",
            stats=data,
        )

        yield _event("complete", "Sync finished")
    except Exception as exc:
        db.rollback()
        logger.error("Sync stream failed: %s", exc, exc_info=True)
        yield _event("error", f"Error: {exc}")
    finally:
        db.close()


@router.get(
    "/sync-stream",
    summary="Run catalog and current-month sync, streaming progress as Server-Sent Events",
)
async def sync_stream(
    client: Optional[ERPClient] = Depends(get_erp_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    return StreamingResponse(
        stream_sync_events(client, session_factory),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
