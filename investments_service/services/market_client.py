"""Client helpers for refreshing catalog prices from the market data provider."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from opentelemetry.propagate import inject
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import InvestmentsSettings
from .catalog import parse_catalog_entries, seed_catalog
from .ledger import CryptoAsset

logger = logging.getLogger(__name__)


async def fetch_market_prices(
    settings: InvestmentsSettings,
    crypto_ids: Sequence[str] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[CryptoAsset]:
    """Fetch current market data in the CoinGecko ``/coins/markets`` shape."""

    url = f"{settings.market_data_url.rstrip('/')}/coins/markets"
    params: dict[str, Any] = {"vs_currency": settings.base_currency.lower()}
    if crypto_ids:
        params["ids"] = ",".join(crypto_ids)
    headers: dict[str, str] = {}
    # Propagate the current trace so provider calls join the caller's trace
    try:
        inject(headers)
    except Exception:
        pass
    async with httpx.AsyncClient(timeout=settings.market_data_timeout_seconds, transport=transport) as client:
        response = await client.get(url, params=params, headers=headers)
    if response.status_code >= 400:
        logger.warning("Market data provider error %s for %s", response.status_code, url)
        response.raise_for_status()
    return parse_catalog_entries(response.json())


async def refresh_catalog_prices(
    session: AsyncSession,
    settings: InvestmentsSettings,
    crypto_ids: Sequence[str] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    assets = await fetch_market_prices(settings, crypto_ids, transport=transport)
    return await seed_catalog(session, assets)


__all__ = ["fetch_market_prices", "refresh_catalog_prices"]
