"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("merchant_address", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("amount > 0", name="positive_amount"),
        sa.CheckConstraint("status IN ('PENDING', 'PAID')", name="valid_order_status"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_orders_merchant_address"), "orders", ["merchant_address"], unique=False
    )
    op.create_index(
        "idx_orders_merchant_status", "orders", ["merchant_address", "status"], unique=False
    )

    # Create indexer_cursors table
    op.create_table(
        "indexer_cursors",
        sa.Column("package_id", sa.String(length=128), nullable=False),
        sa.Column("module", sa.String(length=128), nullable=False),
        sa.Column("tx_digest", sa.String(length=128), nullable=False),
        sa.Column("event_seq", sa.String(length=32), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("package_id", "module"),
    )

    # Create zklogin_salts table
    op.create_table(
        "zklogin_salts",
        sa.Column("identity_key", sa.String(length=512), nullable=False),
        sa.Column("salt", sa.String(length=64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("identity_key"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("zklogin_salts")
    op.drop_table("indexer_cursors")
    op.drop_index("idx_orders_merchant_status", table_name="orders")
    op.drop_index(op.f("ix_orders_merchant_address"), table_name="orders")
    op.drop_table("orders")
