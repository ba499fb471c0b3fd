from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.schemas.sync_log import SyncLogOut


class PeriodOut(BaseModel):
    year: int
    month: int


class ProductSummary(BaseModel):
    product_id: int
    sku: str
    description: str
    family: str = ""

    model_config = ConfigDict(from_attributes=True)


class MonthSales(BaseModel):
    year: int
    month: int
    label: str
    quantity: Decimal


class CurrentMonthOut(BaseModel):
    year: int
    month: int
    sold: Decimal
    live_today: Decimal
    stock_on_hand: Decimal
    through_date: Optional[date] = None


class DashboardRow(BaseModel):
    product: ProductSummary
    months: List[MonthSales]
    average: Decimal
    current_month: CurrentMonthOut
    suggested_purchase: int
    ordered_quantity: Optional[Decimal] = None


class DashboardMeta(BaseModel):
    window_months: int
    sku_prefix: Optional[str] = None
    current_month: PeriodOut
    columns: List[str]
    total_products: int
    generated_at: datetime


class DashboardOut(BaseModel):
    meta: DashboardMeta
    products: List[DashboardRow]


class OrderItem(BaseModel):
    product_id: int
    quantity: Decimal = Field(ge=0)


class SaveOrdersRequest(BaseModel):
    items: List[OrderItem]


class SaveOrdersOut(BaseModel):
    saved: int
    skipped: int
    year: int
    month: int


class ResetOrdersOut(BaseModel):
    deleted: int
    year: int
    month: int


class SyncStats(BaseModel):
    products: int
    historical_sales: int
    current_month_sales: int


class SyncStatusOut(BaseModel):
    last_sync: Optional[datetime] = None
    stats: SyncStats
    latest: Dict[str, Optional[SyncLogOut]]
