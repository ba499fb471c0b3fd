import enum

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from planner.models.base import Base


class SyncType(str, enum.Enum):
    CURRENT_MONTH_SALES = "current_month_sales"
    HISTORICAL_SALES = "historical_sales"
    PRODUCT_CATALOG = "product_catalog"
    STOCK = "stock"


class SyncLogEntry(Base):
    __tablename__ = "sync_logs"

    log_id = Column(Integer, primary_key=True, index=True)
    sync_type = Column(String(40), nullable=False, index=True)  # see SyncType
    target_year = Column(Integer, nullable=False)
    target_month = Column(Integer, nullable=False)

    document_count = Column(Integer, nullable=False, default=0)
    product_count = Column(Integer, nullable=False, default=0)
    products_with_sales_count = Column(Integer, nullable=False, default=0)
    message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
