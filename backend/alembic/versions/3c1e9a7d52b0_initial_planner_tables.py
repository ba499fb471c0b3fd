"""Create products, monthly sales, purchase-order and sync log tables

Revision ID: 3c1e9a7d52b0
Revises:
Create Date: 2026-01-12 13:33:27.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1e9a7d52b0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "products",
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=80), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("family", sa.String(length=150), nullable=False, server_default=""),
        *_timestamps(),
        sa.PrimaryKeyConstraint("product_id"),
    )
    op.create_index(op.f("ix_products_product_id"), "products", ["product_id"], unique=False)
    op.create_index(op.f("ix_products_sku"), "products", ["sku"], unique=True)
    op.create_index(op.f("ix_products_family"), "products", ["family"], unique=False)

    op.create_table(
        "historical_monthly_sales",
        sa.Column("historical_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("quantity_sold", sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column("net_amount", sa.Numeric(precision=14, scale=2), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.product_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("historical_id"),
        sa.UniqueConstraint("product_id", "year", "month", name="uq_historical_sales_product_period"),
    )
    op.create_index(op.f("ix_historical_monthly_sales_historical_id"), "historical_monthly_sales", ["historical_id"], unique=False)
    op.create_index(op.f("ix_historical_monthly_sales_product_id"), "historical_monthly_sales", ["product_id"], unique=False)
    op.create_index("ix_historical_sales_period", "historical_monthly_sales", ["year", "month"], unique=False)

    op.create_table(
        "current_month_sales",
        sa.Column("current_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity_sold", sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column("net_amount", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("stock_on_hand", sa.Numeric(precision=14, scale=3), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.product_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("current_id"),
    )
    op.create_index(op.f("ix_current_month_sales_current_id"), "current_month_sales", ["current_id"], unique=False)
    op.create_index(op.f("ix_current_month_sales_product_id"), "current_month_sales", ["product_id"], unique=True)

    op.create_table(
        "purchase_order_lines",
        sa.Column("order_line_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("quantity_to_buy", sa.Numeric(precision=14, scale=3), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.product_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("order_line_id"),
        sa.UniqueConstraint("product_id", "year", "month", name="uq_purchase_order_lines_product_period"),
    )
    op.create_index(op.f("ix_purchase_order_lines_order_line_id"), "purchase_order_lines", ["order_line_id"], unique=False)
    op.create_index(op.f("ix_purchase_order_lines_product_id"), "purchase_order_lines", ["product_id"], unique=False)
    op.create_index("ix_purchase_order_lines_period", "purchase_order_lines", ["year", "month"], unique=False)

    op.create_table(
        "sync_logs",
        sa.Column("log_id", sa.Integer(), nullable=False),
        sa.Column("sync_type", sa.String(length=40), nullable=False),
        sa.Column("target_year", sa.Integer(), nullable=False),
        sa.Column("target_month", sa.Integer(), nullable=False),
        sa.Column("document_count", sa.Integer(), nullable=False),
        sa.Column("product_count", sa.Integer(), nullable=False),
        sa.Column("products_with_sales_count", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("log_id"),
    )
    op.create_index(op.f("ix_sync_logs_log_id"), "sync_logs", ["log_id"], unique=False)
    op.create_index(op.f("ix_sync_logs_sync_type"), "sync_logs", ["sync_type"], unique=False)
    op.create_index(op.f("ix_sync_logs_created_at"), "sync_logs", ["created_at"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_sync_logs_created_at"), table_name="sync_logs")
    op.drop_index(op.f("ix_sync_logs_sync_type"), table_name="sync_logs")
    op.drop_index(op.f("ix_sync_logs_log_id"), table_name="sync_logs")
    op.drop_table("sync_logs")

    op.drop_index("ix_purchase_order_lines_period", table_name="purchase_order_lines")
    op.drop_index(op.f("ix_purchase_order_lines_product_id"), table_name="purchase_order_lines")
    op.drop_index(op.f("ix_purchase_order_lines_order_line_id"), table_name="purchase_order_lines")
    op.drop_table("purchase_order_lines")

    op.drop_index(op.f("ix_current_month_sales_product_id"), table_name="current_month_sales")
    op.drop_index(op.f("ix_current_month_sales_current_id"), table_name="current_month_sales")
    op.drop_table("current_month_sales")

    op.drop_index("ix_historical_sales_period", table_name="historical_monthly_sales")
    op.drop_index(op.f("ix_historical_monthly_sales_product_id"), table_name="historical_monthly_sales")
    op.drop_index(op.f("ix_historical_monthly_sales_historical_id"), table_name="historical_monthly_sales")
    op.drop_table("historical_monthly_sales")

    op.drop_index(op.f("ix_products_family"), table_name="products")
    op.drop_index(op.f("ix_products_sku"), table_name="products")
    op.drop_index(op.f("ix_products_product_id"), table_name="products")
    op.drop_table("products")
