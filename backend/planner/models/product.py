from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from planner.models.base import Base

AUTO_CREATED_DESCRIPTION = "Auto-created product"


class Product(Base):
    __tablename__ = "products"

    product_id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(80), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=False, default="")
    family = Column(String(150), nullable=False, default="", index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    historical_sales = relationship(
        "HistoricalMonthlySale",
        back_populates="product",
        cascade="all, delete-orphan",
    )
    current_sale = relationship(
        "CurrentMonthSale",
        back_populates="product",
        uselist=False,
        cascade="all, delete-orphan",
    )
    order_lines = relationship("PurchaseOrderLine", back_populates="product", cascade="all, delete-orphan")
