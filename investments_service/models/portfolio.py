"""Cryptocurrency catalog, user, holding and transaction models."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.base import Base

TRANSACTION_TYPES = ("BUY", "SELL")

# Crypto amounts carry up to 10 decimal places; prices up to 8.
AMOUNT_TYPE = Numeric(38, 10)
PRICE_TYPE = Numeric(28, 8)
CHANGE_PCT_TYPE = Numeric(12, 4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PortfolioUser(Base):
    """Internal user record keyed by the external identity issued upstream."""

    __tablename__ = "portfolio_user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    holdings: Mapped[list["Holding"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class Cryptocurrency(Base):
    __tablename__ = "cryptocurrency"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(16))
    name: Mapped[str] = mapped_column(String(128))
    current_price: Mapped[Decimal] = mapped_column(PRICE_TYPE, default=Decimal("0"))
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    price_change_24h: Mapped[Decimal | None] = mapped_column(PRICE_TYPE, nullable=True)
    price_change_percentage_24h: Mapped[Decimal | None] = mapped_column(CHANGE_PCT_TYPE, nullable=True)
    image: Mapped[str | None] = mapped_column(String(512), nullable=True)


class CryptoDailyPrice(Base):
    """Price sample captured each time the catalog is refreshed."""

    __tablename__ = "crypto_daily_price"
    __table_args__ = (
        UniqueConstraint("crypto_id", "recorded_at", name="uq_crypto_daily_price_point"),
        Index("ix_crypto_daily_price_crypto_time", "crypto_id", "recorded_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crypto_id: Mapped[str] = mapped_column(ForeignKey("cryptocurrency.id", ondelete="CASCADE"))
    price: Mapped[Decimal] = mapped_column(PRICE_TYPE)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class Holding(Base):
    __tablename__ = "holding"
    __table_args__ = (
        UniqueConstraint("user_id", "crypto_id", name="uq_holding_user_crypto"),
        CheckConstraint("amount >= 0", name="ck_holding_amount_non_negative"),
        Index("ix_holding_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("portfolio_user.id", ondelete="CASCADE"))
    crypto_id: Mapped[str] = mapped_column(ForeignKey("cryptocurrency.id", ondelete="RESTRICT"))
    amount: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, default=Decimal("0"))
    last_update: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user: Mapped[PortfolioUser] = relationship(back_populates="holdings")
    cryptocurrency: Mapped[Cryptocurrency] = relationship()


class CryptoTransaction(Base):
    __tablename__ = "crypto_transaction"
    __table_args__ = (
        Index("ix_crypto_transaction_user_time", "user_id", "transaction_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("portfolio_user.id", ondelete="CASCADE"))
    crypto_id: Mapped[str] = mapped_column(ForeignKey("cryptocurrency.id", ondelete="RESTRICT"))
    type: Mapped[str] = mapped_column(Enum(*TRANSACTION_TYPES, name="crypto_transaction_type"))
    amount: Mapped[Decimal] = mapped_column(AMOUNT_TYPE)
    price: Mapped[Decimal] = mapped_column(PRICE_TYPE)
    total: Mapped[Decimal] = mapped_column(PRICE_TYPE)
    transaction_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


__all__ = [
    "PortfolioUser",
    "Cryptocurrency",
    "CryptoDailyPrice",
    "Holding",
    "CryptoTransaction",
    "TRANSACTION_TYPES",
]
