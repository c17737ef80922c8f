"""Portfolio ledger contract and the in-memory implementation.

The ledger keeps one balance per ``(user, cryptocurrency)`` pair and records
buy/sell activity against it. Every operation returns a
:class:`~investments_service.services.results.LedgerResult`; domain failures
(unknown asset, unknown user, bad amount, insufficient balance) never raise.

Two identifier spaces are in play: buy, sell and listing take the external
user id issued by the gateway (a string), while the low-level credit and
debit primitives take the internal numeric id.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Callable, Protocol
from uuid import uuid4

from ..schemas.portfolio import CryptoTransactionRequest
from .results import LedgerErrorKind, LedgerResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CryptoAsset:
    """Catalog entry for a tradable cryptocurrency."""

    id: str
    symbol: str
    name: str
    current_price: Decimal
    last_updated: datetime = field(default_factory=utcnow)
    price_change_24h: Decimal | None = None
    price_change_percentage_24h: Decimal | None = None
    image: str | None = None


@dataclass(frozen=True)
class PortfolioEntry:
    crypto_id: str
    symbol: str
    name: str
    amount: Decimal
    unit_price: Decimal
    last_update: datetime

    @property
    def current_price(self) -> Decimal:
        """Market value of the whole holding."""

        return self.amount * self.unit_price


@dataclass(frozen=True)
class TransactionRecord:
    reference: str
    crypto_id: str
    type: str
    amount: Decimal
    price: Decimal
    total: Decimal
    transaction_time: datetime


class PortfolioLedger(Protocol):
    """Balance-mutation service over a user's crypto holdings."""

    async def buy_crypto_transaction(
        self, request: CryptoTransactionRequest, user_id: str
    ) -> LedgerResult[str]:
        ...

    async def sell_crypto_transaction(
        self, request: CryptoTransactionRequest, user_id: str
    ) -> LedgerResult[str]:
        ...

    async def get_user_portfolio(self, user_id: str) -> LedgerResult[list[PortfolioEntry]]:
        ...

    async def add_to_portfolio(
        self, crypto: Any, amount: Decimal | int | str, user_id: int
    ) -> LedgerResult[Decimal]:
        ...

    async def withdraw_from_portfolio(
        self,
        crypto: Any,
        amount: Decimal | int | str,
        user_id: int,
        transaction_time: datetime,
    ) -> LedgerResult[Decimal]:
        ...

    async def get_transaction_history(
        self, user_id: str, limit: int | None = None
    ) -> LedgerResult[list[TransactionRecord]]:
        ...


class HoldingLocks:
    """Per-holding ``asyncio.Lock`` registry serialising in-process mutations.

    A lock lives only while some caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[int, str], asyncio.Lock] = {}
        self._users: dict[tuple[int, str], int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, user_id: int, crypto_id: str) -> AsyncIterator[None]:
        key = (user_id, crypto_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


# Shared validation helpers


def normalize_amount(value: Any, scale: int) -> Decimal | None:
    """Return ``value`` as a positive Decimal truncated to ``scale`` places.

    ``None`` signals an amount the ledger must reject.
    """

    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    amount = amount.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_DOWN)
    if amount <= 0:
        return None
    return amount


def normalize_crypto_id(crypto: Any) -> str:
    """Accept a catalog record or a bare id and return the normalised id."""

    raw = crypto if isinstance(crypto, str) else getattr(crypto, "id", None)
    if not raw:
        return ""
    return str(raw).strip().lower()


def ensure_aware(moment: datetime | None) -> datetime | None:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def new_reference() -> str:
    return str(uuid4())


def invalid_amount(value: Any) -> LedgerResult[Any]:
    return LedgerResult.failure(
        LedgerErrorKind.INVALID_AMOUNT, f"Amount must be a positive number, got {value!r}"
    )


def unknown_asset(crypto_id: str) -> LedgerResult[Any]:
    return LedgerResult.failure(LedgerErrorKind.INVALID_ASSET, f"Unknown cryptocurrency '{crypto_id}'")


def unknown_user(user_id: Any) -> LedgerResult[Any]:
    return LedgerResult.failure(LedgerErrorKind.USER_NOT_FOUND, f"User '{user_id}' not found")


def insufficient_balance(crypto_id: str, requested: Decimal, available: Decimal) -> LedgerResult[Any]:
    return LedgerResult.failure(
        LedgerErrorKind.INSUFFICIENT_BALANCE,
        f"Insufficient {crypto_id} balance: requested {requested}, available {available}",
    )


def log_rejection(operation: str, result: LedgerResult[Any], **context: Any) -> None:
    if result.error is None:
        raise ValueError(f"Cannot log a successful {operation} as rejected")
    logger.warning(
        "Ledger %s rejected: %s",
        operation,
        result.error.message,
        extra={"ledger_operation": operation, "ledger_error": result.error.kind.value, **context},
    )


class InMemoryPortfolioLedger:
    """Ledger holding all state in process memory."""

    def __init__(
        self,
        assets: Iterable[CryptoAsset] = (),
        *,
        auto_provision_users: bool = True,
        include_empty_holdings: bool = False,
        amount_scale: int = 10,
        clock: Clock | None = None,
    ):
        self._assets: dict[str, CryptoAsset] = {}
        self._users: dict[str, int] = {}
        self._balances: dict[tuple[int, str], Decimal] = {}
        self._last_update: dict[tuple[int, str], datetime] = {}
        self._transactions: dict[int, list[TransactionRecord]] = defaultdict(list)
        self._locks = HoldingLocks()
        self._auto_provision = auto_provision_users
        self._include_empty = include_empty_holdings
        self._scale = amount_scale
        self._clock = clock or utcnow
        self.events: list[tuple[str, dict[str, Any]]] = []
        for asset in assets:
            self.register_asset(asset)

    def register_asset(self, asset: CryptoAsset) -> CryptoAsset:
        self._assets[normalize_crypto_id(asset.id)] = asset
        return asset

    def register_user(self, external_id: str) -> int:
        """Return the internal id for ``external_id``, creating it if needed."""

        key = external_id.strip()
        if key not in self._users:
            self._users[key] = len(self._users) + 1
        return self._users[key]

    def balance(self, user_id: int, crypto: Any) -> Decimal:
        return self._balances.get((user_id, normalize_crypto_id(crypto)), Decimal("0"))

    def _resolve_user(self, external_id: str, *, create: bool) -> int | None:
        key = external_id.strip() if external_id else ""
        if not key:
            return None
        if key in self._users:
            return self._users[key]
        if create:
            return self.register_user(key)
        return None

    def _known_user(self, user_id: int) -> bool:
        return user_id in self._users.values()

    async def buy_crypto_transaction(
        self, request: CryptoTransactionRequest, user_id: str
    ) -> LedgerResult[str]:
        amount = normalize_amount(request.amount, self._scale)
        if amount is None:
            result = invalid_amount(request.amount)
            log_rejection("buy", result, user_id=user_id)
            return result
        crypto_id = normalize_crypto_id(request.crypto_id)
        asset = self._assets.get(crypto_id)
        if asset is None:
            result = unknown_asset(crypto_id)
            log_rejection("buy", result, user_id=user_id)
            return result
        internal_id = self._resolve_user(user_id, create=self._auto_provision)
        if internal_id is None:
            result = unknown_user(user_id)
            log_rejection("buy", result, user_id=user_id)
            return result

        trade_time = ensure_aware(request.date_time) or self._clock()
        async with self._locks.hold(internal_id, crypto_id):
            self._credit(internal_id, crypto_id, amount, self._clock())
            record = self._record(internal_id, asset, "BUY", amount, trade_time)
        self.events.append(("portfolio.crypto.bought", {"reference": record.reference, "crypto_id": crypto_id}))
        logger.info("Bought %s %s for user %s", amount, crypto_id, user_id)
        return LedgerResult.success(record.reference)

    async def sell_crypto_transaction(
        self, request: CryptoTransactionRequest, user_id: str
    ) -> LedgerResult[str]:
        amount = normalize_amount(request.amount, self._scale)
        if amount is None:
            result = invalid_amount(request.amount)
            log_rejection("sell", result, user_id=user_id)
            return result
        crypto_id = normalize_crypto_id(request.crypto_id)
        asset = self._assets.get(crypto_id)
        if asset is None:
            result = unknown_asset(crypto_id)
            log_rejection("sell", result, user_id=user_id)
            return result
        internal_id = self._resolve_user(user_id, create=False)
        if internal_id is None:
            if self._auto_provision:
                result = insufficient_balance(crypto_id, amount, Decimal("0"))
            else:
                result = unknown_user(user_id)
            log_rejection("sell", result, user_id=user_id)
            return result

        trade_time = ensure_aware(request.date_time) or self._clock()
        async with self._locks.hold(internal_id, crypto_id):
            available = self.balance(internal_id, crypto_id)
            if not self._debit(internal_id, crypto_id, amount, self._clock()):
                result = insufficient_balance(crypto_id, amount, available)
                log_rejection("sell", result, user_id=user_id)
                return result
            record = self._record(internal_id, asset, "SELL", amount, trade_time)
        self.events.append(("portfolio.crypto.sold", {"reference": record.reference, "crypto_id": crypto_id}))
        logger.info("Sold %s %s for user %s", amount, crypto_id, user_id)
        return LedgerResult.success(record.reference)

    async def get_user_portfolio(self, user_id: str) -> LedgerResult[list[PortfolioEntry]]:
        internal_id = self._resolve_user(user_id, create=False)
        if internal_id is None:
            if self._auto_provision:
                return LedgerResult.success([])
            return unknown_user(user_id)
        entries: list[PortfolioEntry] = []
        for (owner, crypto_id), amount in sorted(self._balances.items()):
            if owner != internal_id:
                continue
            if amount <= 0 and not self._include_empty:
                continue
            asset = self._assets[crypto_id]
            entries.append(
                PortfolioEntry(
                    crypto_id=crypto_id,
                    symbol=asset.symbol,
                    name=asset.name,
                    amount=amount,
                    unit_price=asset.current_price,
                    last_update=self._last_update[(owner, crypto_id)],
                )
            )
        return LedgerResult.success(entries)

    async def add_to_portfolio(
        self, crypto: Any, amount: Decimal | int | str, user_id: int
    ) -> LedgerResult[Decimal]:
        normalized = normalize_amount(amount, self._scale)
        if normalized is None:
            return invalid_amount(amount)
        crypto_id = normalize_crypto_id(crypto)
        if crypto_id not in self._assets:
            return unknown_asset(crypto_id)
        if not self._known_user(user_id):
            return unknown_user(user_id)
        async with self._locks.hold(user_id, crypto_id):
            balance = self._credit(user_id, crypto_id, normalized, self._clock())
        self.events.append(("portfolio.holding.credited", {"user_id": user_id, "crypto_id": crypto_id}))
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
            return invalid_amount(amount)
        crypto_id = normalize_crypto_id(crypto)
        if crypto_id not in self._assets:
            return unknown_asset(crypto_id)
        if not self._known_user(user_id):
            return unknown_user(user_id)
        stamped_at = ensure_aware(transaction_time) or self._clock()
        async with self._locks.hold(user_id, crypto_id):
            available = self.balance(user_id, crypto_id)
            if not self._debit(user_id, crypto_id, normalized, stamped_at):
                result = insufficient_balance(crypto_id, normalized, available)
                log_rejection("withdraw", result, user_id=user_id)
                return result
            balance = self.balance(user_id, crypto_id)
        self.events.append(
            (
                "portfolio.holding.withdrawn",
                {"user_id": user_id, "crypto_id": crypto_id, "transaction_time": stamped_at.isoformat()},
            )
        )
        return LedgerResult.success(balance)

    async def get_transaction_history(
        self, user_id: str, limit: int | None = None
    ) -> LedgerResult[list[TransactionRecord]]:
        internal_id = self._resolve_user(user_id, create=False)
        if internal_id is None:
            if self._auto_provision:
                return LedgerResult.success([])
            return unknown_user(user_id)
        records = sorted(
            self._transactions[internal_id], key=lambda record: record.transaction_time, reverse=True
        )
        return LedgerResult.success(records[:limit] if limit else records)

    def _credit(self, user_id: int, crypto_id: str, amount: Decimal, stamped_at: datetime) -> Decimal:
        key = (user_id, crypto_id)
        self._balances[key] = self._balances.get(key, Decimal("0")) + amount
        self._last_update[key] = stamped_at
        return self._balances[key]

    def _debit(self, user_id: int, crypto_id: str, amount: Decimal, stamped_at: datetime) -> bool:
        key = (user_id, crypto_id)
        available = self._balances.get(key, Decimal("0"))
        if amount > available:
            return False
        self._balances[key] = available - amount
        self._last_update[key] = stamped_at
        return True

    def _record(
        self, user_id: int, asset: CryptoAsset, tx_type: str, amount: Decimal, trade_time: datetime
    ) -> TransactionRecord:
        record = TransactionRecord(
            reference=new_reference(),
            crypto_id=normalize_crypto_id(asset.id),
            type=tx_type,
            amount=amount,
            price=asset.current_price,
            total=amount * asset.current_price,
            transaction_time=trade_time,
        )
        self._transactions[user_id].append(record)
        return record


__all__ = [
    "Clock",
    "CryptoAsset",
    "HoldingLocks",
    "InMemoryPortfolioLedger",
    "PortfolioEntry",
    "PortfolioLedger",
    "TransactionRecord",
    "ensure_aware",
    "insufficient_balance",
    "invalid_amount",
    "log_rejection",
    "new_reference",
    "normalize_amount",
    "normalize_crypto_id",
    "unknown_asset",
    "unknown_user",
    "utcnow",
]
