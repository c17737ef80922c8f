"""SQLAlchemy-backed portfolio ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import InvestmentsSettings
from ..db.session import Database
from ..models import CryptoTransaction, Cryptocurrency, Holding
from ..schemas.portfolio import CryptoTransactionRequest
from .catalog import get_cryptocurrency, get_user, resolve_user
from .ledger import (
    Clock,
    HoldingLocks,
    PortfolioEntry,
    TransactionRecord,
    ensure_aware,
    insufficient_balance,
    invalid_amount,
    log_rejection,
    new_reference,
    normalize_amount,
    normalize_crypto_id,
    unknown_asset,
    unknown_user,
    utcnow,
)
from .outbox import enqueue_portfolio_event
from .results import LedgerResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class SqlPortfolioLedger:
    """Ledger persisting holdings and transactions through SQLAlchemy.

    Each public operation runs in its own session and commits atomically.
    Debits are a single conditional ``UPDATE ... WHERE amount >= :amount`` so
    the balance guard holds even across processes; in-process callers are
    additionally serialised per holding.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        auto_provision_users: bool = True,
        include_empty_holdings: bool = False,
        amount_scale: int = 10,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._auto_provision = auto_provision_users
        self._include_empty = include_empty_holdings
        self._scale = amount_scale
        self._clock = clock or utcnow
        self._locks = HoldingLocks()

    async def buy_crypto_transaction(
        self, request: CryptoTransactionRequest, user_id: str
    ) -> LedgerResult[str]:
        amount = normalize_amount(request.amount, self._scale)
        if amount is None:
            result = invalid_amount(request.amount)
            log_rejection("buy", result, user_id=user_id)
            return result
        return await self._retry_on_conflict(self._buy, request, amount, user_id)

    async def _buy(self, request: CryptoTransactionRequest, amount: Decimal, user_id: str) -> LedgerResult[str]:
        crypto_id = normalize_crypto_id(request.crypto_id)
        async with self._session_factory() as session:
            if await get_cryptocurrency(session, crypto_id) is None:
                result = unknown_asset(crypto_id)
                log_rejection("buy", result, user_id=user_id)
                return result
            user = await resolve_user(session, user_id, create=self._auto_provision)
            if user is None:
                result = unknown_user(user_id)
                log_rejection("buy", result, user_id=user_id)
                return result
            # Provisioning may commit or roll back, so the catalog row is loaded again.
            crypto = await get_cryptocurrency(session, crypto_id)
            if crypto is None:
                result = unknown_asset(crypto_id)
                log_rejection("buy", result, user_id=user_id)
                return result

            trade_time = ensure_aware(request.date_time) or self._clock()
            async with self._locks.hold(user.id, crypto.id):
                balance = await self._credit(session, user.id, crypto.id, amount, self._clock())
                tx = self._record(session, user.id, crypto, "BUY", amount, trade_time)
                await session.flush()
                await enqueue_portfolio_event(
                    session,
                    "portfolio.crypto.bought",
                    {
                        "reference": tx.reference,
                        "user_id": user.id,
                        "crypto_id": crypto.id,
                        "amount": amount,
                        "price": tx.price,
                        "balance": balance,
                    },
                )
                await session.commit()
        logger.info(
            "Bought %s %s",
            amount,
            crypto.id,
            extra={"ledger_operation": "buy", "user_id": user_id, "reference": tx.reference},
        )
        return LedgerResult.success(tx.reference)

    async def sell_crypto_transaction(
        self, request: CryptoTransactionRequest, user_id: str
    ) -> LedgerResult[str]:
        amount = normalize_amount(request.amount, self._scale)
        if amount is None:
            result = invalid_amount(request.amount)
            log_rejection("sell", result, user_id=user_id)
            return result

        async with self._session_factory() as session:
            crypto = await get_cryptocurrency(session, request.crypto_id)
            if crypto is None:
                result = unknown_asset(normalize_crypto_id(request.crypto_id))
                log_rejection("sell", result, user_id=user_id)
                return result
            user = await resolve_user(session, user_id, create=False)
            if user is None:
                if self._auto_provision:
                    result = insufficient_balance(crypto.id, amount, Decimal("0"))
                else:
                    result = unknown_user(user_id)
                log_rejection("sell", result, user_id=user_id)
                return result

            trade_time = ensure_aware(request.date_time) or self._clock()
            async with self._locks.hold(user.id, crypto.id):
                balance = await self._debit(session, user.id, crypto.id, amount, self._clock())
                if balance is None:
                    available = await self._balance(session, user.id, crypto.id)
                    result = insufficient_balance(crypto.id, amount, available)
                    log_rejection("sell", result, user_id=user_id)
                    return result
                tx = self._record(session, user.id, crypto, "SELL", amount, trade_time)
                await session.flush()
                await enqueue_portfolio_event(
                    session,
                    "portfolio.crypto.sold",
                    {
                        "reference": tx.reference,
                        "user_id": user.id,
                        "crypto_id": crypto.id,
                        "amount": amount,
                        "price": tx.price,
                        "balance": balance,
                    },
                )
                await session.commit()
        logger.info(
            "Sold %s %s",
            amount,
            crypto.id,
            extra={"ledger_operation": "sell", "user_id": user_id, "reference": tx.reference},
        )
        return LedgerResult.success(tx.reference)

    async def get_user_portfolio(self, user_id: str) -> LedgerResult[list[PortfolioEntry]]:
        async with self._session_factory() as session:
            user = await resolve_user(session, user_id, create=False)
            if user is None:
                if self._auto_provision:
                    return LedgerResult.success([])
                return unknown_user(user_id)
            stmt = (
                select(Holding, Cryptocurrency)
                .join(Cryptocurrency, Cryptocurrency.id == Holding.crypto_id)
                .where(Holding.user_id == user.id)
                .order_by(Holding.crypto_id)
            )
            if not self._include_empty:
                stmt = stmt.where(Holding.amount > 0)
            rows = (await session.execute(stmt)).all()
        entries = [
            PortfolioEntry(
                crypto_id=crypto.id,
                symbol=crypto.symbol,
                name=crypto.name,
                amount=_decimal(holding.amount),
                unit_price=_decimal(crypto.current_price),
                last_update=ensure_aware(holding.last_update) or self._clock(),
            )
            for holding, crypto in rows
        ]
        return LedgerResult.success(entries)

    async def add_to_portfolio(
        self, crypto: Any, amount: Decimal | int | str, user_id: int
    ) -> LedgerResult[Decimal]:
        normalized = normalize_amount(amount, self._scale)
        if normalized is None:
            result = invalid_amount(amount)
            log_rejection("credit", result, user_id=user_id)
            return result
        return await self._retry_on_conflict(self._add, normalize_crypto_id(crypto), normalized, user_id)

    async def _add(self, crypto_id: str, amount: Decimal, user_id: int) -> LedgerResult[Decimal]:
        async with self._session_factory() as session:
            crypto = await get_cryptocurrency(session, crypto_id)
            if crypto is None:
                result = unknown_asset(crypto_id)
                log_rejection("credit", result, user_id=user_id)
                return result
            if await get_user(session, user_id) is None:
                result = unknown_user(user_id)
                log_rejection("credit", result, user_id=user_id)
                return result
            async with self._locks.hold(user_id, crypto.id):
                balance = await self._credit(session, user_id, crypto.id, amount, self._clock())
                await enqueue_portfolio_event(
                    session,
                    "portfolio.holding.credited",
                    {"user_id": user_id, "crypto_id": crypto.id, "amount": amount, "balance": balance},
                )
                await session.commit()
        return LedgerResult.success(balance)

    async def withdraw_from_portfolio(
        self,
        crypto: Any,
        amount: Decimal | int | str,
        user_id: int,
        transaction_time: datetime,
    ) -> LedgerResult[Decimal]:
        normalized = normalize_amount(amount, self._scale)
        if normalized is None:
            result = invalid_amount(amount)
            log_rejection("withdraw", result, user_id=user_id)
            return result
        crypto_id = normalize_crypto_id(crypto)
        stamped_at = ensure_aware(transaction_time) or self._clock()

        async with self._session_factory() as session:
            record = await get_cryptocurrency(session, crypto_id)
            if record is None:
                result = unknown_asset(crypto_id)
                log_rejection("withdraw", result, user_id=user_id)
                return result
            if await get_user(session, user_id) is None:
                result = unknown_user(user_id)
                log_rejection("withdraw", result, user_id=user_id)
                return result
            async with self._locks.hold(user_id, record.id):
                balance = await self._debit(session, user_id, record.id, normalized, stamped_at)
                if balance is None:
                    available = await self._balance(session, user_id, record.id)
                    result = insufficient_balance(record.id, normalized, available)
                    log_rejection("withdraw", result, user_id=user_id)
                    return result
                await enqueue_portfolio_event(
                    session,
                    "portfolio.holding.withdrawn",
                    {
                        "user_id": user_id,
                        "crypto_id": record.id,
                        "amount": normalized,
                        "balance": balance,
                        "transaction_time": stamped_at,
                    },
                )
                await session.commit()
        return LedgerResult.success(balance)

    async def get_transaction_history(
        self, user_id: str, limit: int | None = None
    ) -> LedgerResult[list[TransactionRecord]]:
        async with self._session_factory() as session:
            user = await resolve_user(session, user_id, create=False)
            if user is None:
                if self._auto_provision:
                    return LedgerResult.success([])
                return unknown_user(user_id)
            stmt = (
                select(CryptoTransaction)
                .where(CryptoTransaction.user_id == user.id)
                .order_by(CryptoTransaction.transaction_time.desc(), CryptoTransaction.id.desc())
            )
            if limit:
                stmt = stmt.limit(limit)
            rows = (await session.execute(stmt)).scalars().all()
        return LedgerResult.success(
            [
                TransactionRecord(
                    reference=row.reference,
                    crypto_id=row.crypto_id,
                    type=row.type,
                    amount=_decimal(row.amount),
                    price=_decimal(row.price),
                    total=_decimal(row.total),
                    transaction_time=ensure_aware(row.transaction_time) or self._clock(),
                )
                for row in rows
            ]
        )

    async def balance(self, user_id: int, crypto: Any) -> Decimal:
        async with self._session_factory() as session:
            return await self._balance(session, user_id, normalize_crypto_id(crypto))

    # Helpers

    async def _retry_on_conflict(self, operation: Callable[..., Awaitable[T]], *args: Any) -> T:
        # A concurrent first credit from another process can win the unique
        # (user, crypto) insert; the second attempt then takes the update path.
        try:
            return await operation(*args)
        except IntegrityError:
            logger.warning("Holding insert conflicted with a concurrent writer; retrying")
            return await operation(*args)

    async def _balance(self, session: AsyncSession, user_id: int, crypto_id: str) -> Decimal:
        stmt = select(Holding.amount).where(Holding.user_id == user_id, Holding.crypto_id == crypto_id)
        value = (await session.execute(stmt)).scalar_one_or_none()
        return Decimal("0") if value is None else _decimal(value)

    async def _credit(
        self, session: AsyncSession, user_id: int, crypto_id: str, amount: Decimal, stamped_at: datetime
    ) -> Decimal:
        stmt = (
            update(Holding)
            .where(Holding.user_id == user_id, Holding.crypto_id == crypto_id)
            .values(amount=Holding.amount + amount, last_update=stamped_at)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount == 0:
            session.add(Holding(user_id=user_id, crypto_id=crypto_id, amount=amount, last_update=stamped_at))
            await session.flush()
        return await self._balance(session, user_id, crypto_id)

    async def _debit(
        self, session: AsyncSession, user_id: int, crypto_id: str, amount: Decimal, stamped_at: datetime
    ) -> Decimal | None:
        """Decrement the holding if it covers ``amount``; ``None`` otherwise."""

        stmt = (
            update(Holding)
            .where(
                Holding.user_id == user_id,
                Holding.crypto_id == crypto_id,
                Holding.amount >= amount,
            )
            .values(amount=Holding.amount - amount, last_update=stamped_at)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            return None
        return await self._balance(session, user_id, crypto_id)

    def _record(
        self,
        session: AsyncSession,
        user_id: int,
        crypto: Cryptocurrency,
        tx_type: str,
        amount: Decimal,
        trade_time: datetime,
    ) -> CryptoTransaction:
        price = _decimal(crypto.current_price)
        tx = CryptoTransaction(
            reference=new_reference(),
            user_id=user_id,
            crypto_id=crypto.id,
            type=tx_type,
            amount=amount,
            price=price,
            total=amount * price,
            transaction_time=trade_time,
        )
        session.add(tx)
        return tx


def build_ledger(settings: InvestmentsSettings, database: Database) -> SqlPortfolioLedger:
    """Wire the SQL ledger from configuration."""

    return SqlPortfolioLedger(
        database.session_factory,
        auto_provision_users=settings.auto_provision_users,
        include_empty_holdings=settings.include_empty_holdings,
        amount_scale=settings.amount_scale,
    )


__all__ = ["SqlPortfolioLedger", "build_ledger"]
