from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from planner.schemas.dashboard import PeriodOut, ProductSummary


class MonthlySaleOut(BaseModel):
    year: int
    month: int
    quantity_sold: Decimal
    net_amount: Decimal


class ProductHistoryOut(BaseModel):
    product: ProductSummary
    sales: List[MonthlySaleOut]
    average_quantity: Decimal
    average_amount: Decimal
    months_with_sales: int


class HistoricalSalesOut(BaseModel):
    months: int
    sku_prefix: Optional[str] = None
    total_products: int
    products: List[ProductHistoryOut]


class CurrentSaleOut(BaseModel):
    quantity_sold: Decimal
    net_amount: Decimal
    stock_on_hand: Decimal
    through_date: Optional[date] = None


class ProductCurrentOut(CurrentSaleOut):
    product: ProductSummary


class CurrentSalesOut(BaseModel):
    sku_prefix: Optional[str] = None
    total_products: int
    products: List[ProductCurrentOut]


class OrderLineOut(BaseModel):
    year: int
    month: int
    quantity_to_buy: Decimal


class ProductOverviewRow(ProductHistoryOut):
    current_month: CurrentSaleOut
    orders: List[OrderLineOut]
    current_order: Optional[Decimal] = None


class ProductOverviewOut(BaseModel):
    months: int
    sku_prefix: Optional[str] = None
    current_period: PeriodOut
    total_products: int
    products: List[ProductOverviewRow]
