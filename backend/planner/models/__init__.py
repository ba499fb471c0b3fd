from .base import Base
from .product import Product
from .sales import CurrentMonthSale, HistoricalMonthlySale
from .purchase import PurchaseOrderLine
from .sync_log import SyncLogEntry, SyncType
