"""baseline schema: locations, items, inventory, inbound plans, stock history, audit

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from wms.db import Base
from wms import models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _has_column(inspector: sa.Inspector, table_name: str, column_name: str) -> bool:
    if not _has_table(inspector, table_name):
        return False
    return any(col["name"] == column_name for col in inspector.get_columns(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)

    # Databases created before LOT/expiry tracking and typed inbound plans.
    inspector = sa.inspect(bind)
    if not _has_column(inspector, "item_master", "barcode"):
        op.add_column("item_master", sa.Column("barcode", sa.String(length=64), nullable=True))
    if not _has_column(inspector, "item_master", "shelf_life_days"):
        op.add_column("item_master", sa.Column("shelf_life_days", sa.Integer(), nullable=True))

    if not _has_column(inspector, "inventory", "lot_no"):
        op.add_column("inventory", sa.Column("lot_no", sa.String(length=64), server_default="DEFAULT", nullable=False))
    if not _has_column(inspector, "inventory", "exp_date"):
        op.add_column("inventory", sa.Column("exp_date", sa.Date(), nullable=True))
    if not _has_column(inspector, "inventory", "status"):
        op.add_column("inventory", sa.Column("status", sa.String(length=16), server_default="AVAILABLE", nullable=False))
    if not _has_column(inspector, "inventory", "inbound_date"):
        op.add_column("inventory", sa.Column("inbound_date", sa.DateTime(), nullable=True))

    if not _has_column(inspector, "inbound_master", "inbound_type"):
        op.add_column("inbound_master", sa.Column("inbound_type", sa.String(length=16), server_default="MAT_IN", nullable=False))

    if not _has_column(inspector, "stock_tx", "operator"):
        op.add_column("stock_tx", sa.Column("operator", sa.String(length=64), nullable=True))


def downgrade() -> None:
    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
