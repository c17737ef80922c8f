"""Pydantic schemas for the portfolio API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CryptoTransactionRequest(BaseModel):
    """Buy or sell order as submitted by the web client."""

    model_config = ConfigDict(populate_by_name=True)

    crypto_id: str = Field(..., alias="cryptoId", examples=["bitcoin"])
    amount: Decimal = Field(..., description="Quantity of the asset to buy or sell")
    date_time: datetime | None = Field(
        default=None,
        alias="dateTime",
        description="Trade time; defaults to the time the order is processed",
    )


class TransactionReceiptSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId")


class PortfolioEntrySchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    crypto_name: str = Field(..., alias="cryptoName", description="Catalog id of the asset")
    symbol: str
    name: str
    amount: float
    unit_price: float = Field(..., alias="unitPrice")
    current_price: float = Field(..., alias="currentPrice", description="Market value of the holding")
    last_update: datetime


class CryptoTransactionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId")
    crypto_id: str = Field(..., alias="cryptoId")
    type: str
    amount: float
    price: float
    total: float
    date_time: datetime = Field(..., alias="dateTime")


class CryptocurrencySchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    symbol: str
    name: str
    current_price: float
    last_updated: datetime
    price_change_24h: float | None = None
    price_change_percentage_24h: float | None = None
    image: str | None = None


class CryptocurrencyPageSchema(BaseModel):
    """Page envelope in the shape the market view pages through."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[CryptocurrencySchema]
    number: int
    size: int
    total_pages: int = Field(..., alias="totalPages")
    total_elements: int = Field(..., alias="totalElements")
    number_of_elements: int = Field(..., alias="numberOfElements")
    first: bool
    last: bool
    empty: bool


class CryptoDailyPriceSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price: float
    date_time: datetime = Field(..., alias="dateTime")


__all__ = [
    "CryptoDailyPriceSchema",
    "CryptoTransactionRequest",
    "CryptoTransactionSchema",
    "CryptocurrencyPageSchema",
    "CryptocurrencySchema",
    "PortfolioEntrySchema",
    "TransactionReceiptSchema",
]
