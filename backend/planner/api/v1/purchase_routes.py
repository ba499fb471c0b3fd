import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from planner.deps import get_db
from planner.models.product import Product
from planner.schemas.purchase import (
    CurrentPurchaseOrderUpsert,
    ProductOrdersOut,
    PurchaseOrderList,
    PurchaseOrderOut,
    PurchaseOrderUpsert,
)
from planner.services import purchase_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "",
    response_model=PurchaseOrderList,
    summary="List purchase-order lines",
)
def list_orders(
    product_id: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    sku_prefix: Optional[str] = None,
    db: Session = Depends(get_db),
):
    orders = purchase_service.list_orders(db, product_id=product_id, year=year, month=month, sku_prefix=sku_prefix)
    return {"total": len(orders), "orders": orders}


@router.get(
    "/{product_id}",
    response_model=ProductOrdersOut,
    summary="Purchase-order lines of one product, newest month first",
)
def product_orders(product_id: int, db: Session = Depends(get_db)):
    try:
        orders = purchase_service.orders_for_product(db, product_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return {"product": db.get(Product, product_id), "orders": orders}


@router.put(
    "/{product_id}",
    response_model=PurchaseOrderOut,
    summary="Create or update the order line of a product for a given month",
)
def upsert_order(product_id: int, payload: PurchaseOrderUpsert, db: Session = Depends(get_db)):
    try:
        return purchase_service.upsert_order(db, product_id, payload.year, payload.month, payload.quantity)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.put(
    "/{product_id}/current",
    response_model=PurchaseOrderOut,
    summary="Create or update the order line of a product for the current month",
)
def upsert_current_order(product_id: int, payload: CurrentPurchaseOrderUpsert, db: Session = Depends(get_db)):
    try:
        return purchase_service.upsert_current_order(db, product_id, payload.quantity)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.delete(
    "/{product_id}/{year}/{month}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete one order line",
)
def delete_order(product_id: int, year: int, month: int, db: Session = Depends(get_db)):
    try:
        purchase_service.delete_order(db, product_id, year, month)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
