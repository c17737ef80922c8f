"""Add 24h market fields to cryptocurrency and the crypto_daily_price series.

Revision ID: 0002_add_market_fields_and_daily_prices
Revises: 0001_create_crypto_portfolio_tables
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect

revision = "0002_add_market_fields_and_daily_prices"
down_revision = "0001_create_crypto_portfolio_tables"
branch_labels = None
depends_on = None


def _has_table(bind, table_name: str) -> bool:
    return table_name in inspect(bind).get_table_names()


def _has_column(bind, table_name: str, column_name: str) -> bool:
    return column_name in {column["name"] for column in inspect(bind).get_columns(table_name)}


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_column(bind, "cryptocurrency", "price_change_24h"):
        op.add_column("cryptocurrency", sa.Column("price_change_24h", sa.Numeric(28, 8), nullable=True))
    if not _has_column(bind, "cryptocurrency", "price_change_percentage_24h"):
        op.add_column("cryptocurrency", sa.Column("price_change_percentage_24h", sa.Numeric(12, 4), nullable=True))
    if not _has_column(bind, "cryptocurrency", "image"):
        op.add_column("cryptocurrency", sa.Column("image", sa.String(length=512), nullable=True))

    if not _has_table(bind, "crypto_daily_price"):
        op.create_table(
            "crypto_daily_price",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column(
                "crypto_id",
                sa.String(length=64),
                sa.ForeignKey("cryptocurrency.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("price", sa.Numeric(28, 8), nullable=False),
            sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("crypto_id", "recorded_at", name="uq_crypto_daily_price_point"),
        )
        op.create_index(
            "ix_crypto_daily_price_crypto_time", "crypto_daily_price", ["crypto_id", "recorded_at"]
        )


def downgrade() -> None:
    op.drop_index("ix_crypto_daily_price_crypto_time", table_name="crypto_daily_price")
    op.drop_table("crypto_daily_price")
    op.drop_column("cryptocurrency", "image")
    op.drop_column("cryptocurrency", "price_change_percentage_24h")
    op.drop_column("cryptocurrency", "price_change_24h")
