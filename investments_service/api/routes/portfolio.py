"""Crypto portfolio endpoints: buy, sell, holdings and history.

Ledger failures surface as :class:`LedgerOperationError` through
``LedgerResult.unwrap`` and are rendered by the application's handler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...schemas import (
    CryptoTransactionRequest,
    CryptoTransactionSchema,
    PortfolioEntrySchema,
    TransactionReceiptSchema,
)
from ...services.ledger import PortfolioEntry, PortfolioLedger, TransactionRecord
from ..dependencies import InternalAuth, RequestContext, get_ledger, get_request_context

router = APIRouter(dependencies=[InternalAuth])


def _serialize_entry(entry: PortfolioEntry) -> PortfolioEntrySchema:
    return PortfolioEntrySchema(
        crypto_name=entry.crypto_id,
        symbol=entry.symbol,
        name=entry.name,
        amount=float(entry.amount),
        unit_price=float(entry.unit_price),
        current_price=float(entry.current_price),
        last_update=entry.last_update,
    )


def _serialize_transaction(record: TransactionRecord) -> CryptoTransactionSchema:
    return CryptoTransactionSchema(
        transaction_id=record.reference,
        crypto_id=record.crypto_id,
        type=record.type,
        amount=float(record.amount),
        price=float(record.price),
        total=float(record.total),
        date_time=record.transaction_time,
    )


@router.post("/buycrypto", response_model=TransactionReceiptSchema, status_code=status.HTTP_201_CREATED)
async def buy_crypto(
    payload: CryptoTransactionRequest,
    ledger: PortfolioLedger = Depends(get_ledger),
    context: RequestContext = Depends(get_request_context),
) -> TransactionReceiptSchema:
    result = await ledger.buy_crypto_transaction(payload, context.user_id)
    return TransactionReceiptSchema(transaction_id=result.unwrap())


@router.post("/sellcrypto", response_model=TransactionReceiptSchema, status_code=status.HTTP_201_CREATED)
async def sell_crypto(
    payload: CryptoTransactionRequest,
    ledger: PortfolioLedger = Depends(get_ledger),
    context: RequestContext = Depends(get_request_context),
) -> TransactionReceiptSchema:
    result = await ledger.sell_crypto_transaction(payload, context.user_id)
    return TransactionReceiptSchema(transaction_id=result.unwrap())


@router.get("/getportfolio", response_model=list[PortfolioEntrySchema])
async def get_portfolio(
    ledger: PortfolioLedger = Depends(get_ledger),
    context: RequestContext = Depends(get_request_context),
) -> list[PortfolioEntrySchema]:
    result = await ledger.get_user_portfolio(context.user_id)
    return [_serialize_entry(entry) for entry in result.unwrap()]


@router.get("/transactions", response_model=list[CryptoTransactionSchema])
async def get_transactions(
    limit: int | None = Query(default=None, ge=1, le=1000),
    ledger: PortfolioLedger = Depends(get_ledger),
    context: RequestContext = Depends(get_request_context),
) -> list[CryptoTransactionSchema]:
    result = await ledger.get_transaction_history(context.user_id, limit=limit)
    return [_serialize_transaction(record) for record in result.unwrap()]


__all__ = ["router"]
