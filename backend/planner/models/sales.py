from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, UniqueConstraint, func
from sqlalchemy.orm import relationship

from planner.models.base import Base


class HistoricalMonthlySale(Base):
    __tablename__ = "historical_monthly_sales"
    __table_args__ = (
        UniqueConstraint("product_id", "year", "month", name="uq_historical_sales_product_period"),
        Index("ix_historical_sales_period", "year", "month"),
    )

    historical_id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    quantity_sold = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    net_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="historical_sales")


class CurrentMonthSale(Base):
    __tablename__ = "current_month_sales"

    current_id = Column(Integer, primary_key=True, index=True)
    # one accumulator row per product
    product_id = Column(
        Integer,
        ForeignKey("products.product_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    quantity_sold = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    net_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    stock_on_hand = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))  # General warehouse only
    # last day whose sales are included; today means the live gap is already covered
    through_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="current_sale")
