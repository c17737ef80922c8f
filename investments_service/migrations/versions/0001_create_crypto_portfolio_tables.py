"""Crypto catalog, portfolio users, holdings, transactions and outbox."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql

revision = "0001_create_crypto_portfolio_tables"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, table_name: str) -> bool:
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "portfolio_user"):
        op.create_table(
            "portfolio_user",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("external_id", sa.String(length=128), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_portfolio_user_external_id", "portfolio_user", ["external_id"], unique=True)

    if not _has_table(bind, "cryptocurrency"):
        op.create_table(
            "cryptocurrency",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("symbol", sa.String(length=16), nullable=False),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("current_price", sa.Numeric(28, 8), nullable=False, server_default="0"),
            sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )

    if not _has_table(bind, "holding"):
        op.create_table(
            "holding",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.Integer, sa.ForeignKey("portfolio_user.id", ondelete="CASCADE"), nullable=False),
            sa.Column("crypto_id", sa.String(length=64), sa.ForeignKey("cryptocurrency.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("amount", sa.Numeric(38, 10), nullable=False, server_default="0"),
            sa.Column("last_update", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.UniqueConstraint("user_id", "crypto_id", name="uq_holding_user_crypto"),
            sa.CheckConstraint("amount >= 0", name="ck_holding_amount_non_negative"),
            sa.Index("ix_holding_user", "user_id"),
        )

    if not _has_table(bind, "crypto_transaction"):
        op.create_table(
            "crypto_transaction",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("reference", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.Integer, sa.ForeignKey("portfolio_user.id", ondelete="CASCADE"), nullable=False),
            sa.Column("crypto_id", sa.String(length=64), sa.ForeignKey("cryptocurrency.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("type", sa.Enum("BUY", "SELL", name="crypto_transaction_type"), nullable=False),
            sa.Column("amount", sa.Numeric(38, 10), nullable=False),
            sa.Column("price", sa.Numeric(28, 8), nullable=False),
            sa.Column("total", sa.Numeric(28, 8), nullable=False),
            sa.Column("transaction_time", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Index("ix_crypto_transaction_user_time", "user_id", "transaction_time"),
        )
        op.create_index("ix_crypto_transaction_reference", "crypto_transaction", ["reference"], unique=True)

    if not _has_table(bind, "portfolio_outbox"):
        op.create_table(
            "portfolio_outbox",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("event_type", sa.String(length=128), nullable=False),
            sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("processed_at", sa.DateTime(timezone=True)),
            sa.Index("ix_portfolio_outbox_status", "status", "created_at"),
        )


def downgrade() -> None:
    op.drop_table("portfolio_outbox")
    op.drop_index("ix_crypto_transaction_reference", table_name="crypto_transaction")
    op.drop_table("crypto_transaction")
    op.drop_table("holding")
    op.drop_table("cryptocurrency")
    op.drop_index("ix_portfolio_user_external_id", table_name="portfolio_user")
    op.drop_table("portfolio_user")
    sa.Enum(name="crypto_transaction_type").drop(op.get_bind(), checkfirst=True)
