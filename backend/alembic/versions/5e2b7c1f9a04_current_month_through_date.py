"""Track the last sales date covered by each current-month row

Revision ID: 5e2b7c1f9a04
Revises: 3c1e9a7d52b0
Create Date: 2026-01-18 01:44:17.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5e2b7c1f9a04"
down_revision: Union[str, Sequence[str], None] = "3c1e9a7d52b0"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    with op.batch_alter_table("current_month_sales") as batch_op:
        batch_op.add_column(sa.Column("through_date", sa.Date(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("current_month_sales") as batch_op:
        batch_op.drop_column("through_date")
