from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.schemas.dashboard import ProductSummary


class PurchaseOrderOut(BaseModel):
    order_line_id: int
    product_id: int
    year: int
    month: int
    quantity_to_buy: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderWithProduct(PurchaseOrderOut):
    product: ProductSummary


class PurchaseOrderList(BaseModel):
    total: int
    orders: List[PurchaseOrderWithProduct]


class ProductOrdersOut(BaseModel):
    product: ProductSummary
    orders: List[PurchaseOrderOut]


class PurchaseOrderUpsert(BaseModel):
    year: int = Field(ge=1)
    month: int = Field(ge=1, le=12)
    quantity: Decimal = Field(default=Decimal("0"), ge=0)


class CurrentPurchaseOrderUpsert(BaseModel):
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
