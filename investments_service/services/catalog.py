"""Cryptocurrency catalog and user directory lookups."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CryptoDailyPrice, Cryptocurrency, PortfolioUser
from .ledger import CryptoAsset, ensure_aware, normalize_crypto_id, utcnow

logger = logging.getLogger(__name__)

DAILY_PRICE_WINDOW = timedelta(days=1)


@dataclass(frozen=True)
class CatalogPage:
    """One page of the catalog, numbered from zero."""

    items: list[CryptoAsset]
    number: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0

    @property
    def first(self) -> bool:
        return self.number == 0

    @property
    def last(self) -> bool:
        return self.number >= self.total_pages - 1


def _optional_decimal(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def to_asset(record: Cryptocurrency) -> CryptoAsset:
    return CryptoAsset(
        id=record.id,
        symbol=record.symbol,
        name=record.name,
        current_price=Decimal(str(record.current_price)),
        last_updated=ensure_aware(record.last_updated) or utcnow(),
        price_change_24h=_optional_decimal(record.price_change_24h),
        price_change_percentage_24h=_optional_decimal(record.price_change_percentage_24h),
        image=record.image,
    )


async def get_cryptocurrency(session: AsyncSession, crypto_id: str) -> Cryptocurrency | None:
    normalized = normalize_crypto_id(crypto_id)
    if not normalized:
        return None
    return await session.get(Cryptocurrency, normalized)


async def list_cryptocurrencies(session: AsyncSession) -> list[Cryptocurrency]:
    result = await session.execute(select(Cryptocurrency).order_by(Cryptocurrency.id))
    return list(result.scalars().all())


async def page_cryptocurrencies(session: AsyncSession, page: int = 0, size: int = 10) -> CatalogPage:
    if page < 0 or size < 1:
        raise ValueError("page must be >= 0 and size >= 1")
    total = (await session.execute(select(func.count()).select_from(Cryptocurrency))).scalar_one()
    stmt = select(Cryptocurrency).order_by(Cryptocurrency.id).offset(page * size).limit(size)
    records = (await session.execute(stmt)).scalars().all()
    return CatalogPage(items=[to_asset(record) for record in records], number=page, size=size, total_elements=total)


async def record_price_point(
    session: AsyncSession, crypto_id: str, price: Decimal, recorded_at: datetime
) -> CryptoDailyPrice:
    """Store one price sample; a sample at the same instant is overwritten."""

    stmt = select(CryptoDailyPrice).where(
        CryptoDailyPrice.crypto_id == crypto_id, CryptoDailyPrice.recorded_at == recorded_at
    )
    point = (await session.execute(stmt)).scalars().first()
    if point is None:
        point = CryptoDailyPrice(crypto_id=crypto_id, recorded_at=recorded_at)
        session.add(point)
    point.price = price
    return point


async def list_daily_prices(session: AsyncSession, crypto_id: str) -> list[CryptoDailyPrice]:
    """Price samples from the day leading up to the newest sample, oldest first."""

    latest = (
        await session.execute(
            select(func.max(CryptoDailyPrice.recorded_at)).where(CryptoDailyPrice.crypto_id == crypto_id)
        )
    ).scalar_one_or_none()
    if latest is None:
        return []
    stmt = (
        select(CryptoDailyPrice)
        .where(
            CryptoDailyPrice.crypto_id == crypto_id,
            CryptoDailyPrice.recorded_at >= latest - DAILY_PRICE_WINDOW,
        )
        .order_by(CryptoDailyPrice.recorded_at)
    )
    return list((await session.execute(stmt)).scalars().all())


async def upsert_cryptocurrency(session: AsyncSession, asset: CryptoAsset) -> Cryptocurrency:
    """Insert or refresh a catalog entry and sample its price; the caller commits."""

    normalized = normalize_crypto_id(asset.id)
    if not normalized:
        raise ValueError("Cryptocurrency id must not be empty")
    record = await session.get(Cryptocurrency, normalized)
    if record is None:
        record = Cryptocurrency(id=normalized)
        session.add(record)
    price = Decimal(str(asset.current_price))
    stamped_at = ensure_aware(asset.last_updated) or utcnow()
    record.symbol = asset.symbol.strip().lower()
    record.name = asset.name.strip()
    record.current_price = price
    record.last_updated = stamped_at
    record.price_change_24h = asset.price_change_24h
    record.price_change_percentage_24h = asset.price_change_percentage_24h
    record.image = asset.image
    await session.flush()
    await record_price_point(session, normalized, price, stamped_at)
    await session.flush()
    return record


def parse_catalog_entries(entries: Iterable[Mapping[str, Any]]) -> list[CryptoAsset]:
    """Build catalog assets from market-data style dictionaries.

    Each entry needs ``id``, ``symbol``, ``name`` and ``current_price``;
    ``last_updated`` is optional ISO 8601 text. ``price_change_24h``,
    ``price_change_percentage_24h`` and ``image`` are kept when present.
    """

    assets: list[CryptoAsset] = []
    for entry in entries:
        missing = [key for key in ("id", "symbol", "name", "current_price") if entry.get(key) is None]
        if missing:
            raise ValueError(f"Catalog entry {entry.get('id')!r} is missing {', '.join(missing)}")
        last_updated = entry.get("last_updated")
        moment = utcnow()
        if last_updated:
            moment = ensure_aware(datetime.fromisoformat(str(last_updated).replace("Z", "+00:00"))) or moment
        assets.append(
            CryptoAsset(
                id=normalize_crypto_id(str(entry["id"])),
                symbol=str(entry["symbol"]).lower(),
                name=str(entry["name"]),
                current_price=Decimal(str(entry["current_price"])),
                last_updated=moment,
                price_change_24h=_optional_decimal(entry.get("price_change_24h")),
                price_change_percentage_24h=_optional_decimal(entry.get("price_change_percentage_24h")),
                image=entry.get("image") or None,
            )
        )
    return assets


def load_catalog_file(path: Path) -> list[CryptoAsset]:
    payload = json.loads(Path(path).read_text())
    if isinstance(payload, Mapping):
        payload = payload.get("content", [])
    return parse_catalog_entries(payload)


async def seed_catalog(session: AsyncSession, assets: Iterable[CryptoAsset]) -> int:
    count = 0
    for asset in assets:
        await upsert_cryptocurrency(session, asset)
        count += 1
    await session.commit()
    logger.info("Catalog seeded with %d cryptocurrencies", count)
    return count


async def get_user(session: AsyncSession, user_id: int) -> PortfolioUser | None:
    return await session.get(PortfolioUser, user_id)


async def resolve_user(session: AsyncSession, external_id: str, *, create: bool = False) -> PortfolioUser | None:
    """Map an external user id to its internal record.

    With ``create`` the record is provisioned and committed immediately so a
    concurrent provisioning of the same id resolves to the winner's row.
    """

    normalized = external_id.strip() if external_id else ""
    if not normalized:
        return None
    stmt = select(PortfolioUser).where(PortfolioUser.external_id == normalized)
    user = (await session.execute(stmt)).scalars().first()
    if user is not None or not create:
        return user
    user = PortfolioUser(external_id=normalized)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return (await session.execute(stmt)).scalars().first()
    await session.refresh(user)
    logger.info("Provisioned portfolio user", extra={"external_id": normalized, "user_id": user.id})
    return user


__all__ = [
    "CatalogPage",
    "DAILY_PRICE_WINDOW",
    "get_cryptocurrency",
    "get_user",
    "list_cryptocurrencies",
    "list_daily_prices",
    "load_catalog_file",
    "page_cryptocurrencies",
    "parse_catalog_entries",
    "record_price_point",
    "resolve_user",
    "seed_catalog",
    "to_asset",
    "upsert_cryptocurrency",
]
