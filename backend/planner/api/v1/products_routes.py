from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from planner.deps import get_db
from planner.schemas.product import CurrentSalesOut, HistoricalSalesOut, ProductOverviewOut
from planner.services import product_service

router = APIRouter()


@router.get(
    "/historical-sales",
    response_model=HistoricalSalesOut,
    summary="Monthly sales per product over the last `months` closed months",
)
def historical_sales(
    months: int = Query(12, description="Closed months to include (1-12)"),
    sku_prefix: Optional[str] = Query(None, description="Brand prefix of the SKU"),
    db: Session = Depends(get_db),
):
    try:
        return product_service.historical_sales(db, months=months, sku_prefix=sku_prefix)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get(
    "/current-sales",
    response_model=CurrentSalesOut,
    summary="Current-month units sold, net amount and stock per product",
)
def current_sales(sku_prefix: Optional[str] = None, db: Session = Depends(get_db)):
    return product_service.current_sales(db, sku_prefix=sku_prefix)


@router.get(
    "/overview",
    response_model=ProductOverviewOut,
    summary="History, current month and order lines for every product",
)
def product_overview(
    months: int = Query(12, description="Closed months to include (1-12)"),
    sku_prefix: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        return product_service.product_overview(db, months=months, sku_prefix=sku_prefix)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
