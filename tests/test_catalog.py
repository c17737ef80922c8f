from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import httpx
import pytest

from investments_service.core.config import InvestmentsSettings
from investments_service.services.catalog import (
    get_cryptocurrency,
    list_cryptocurrencies,
    list_daily_prices,
    load_catalog_file,
    page_cryptocurrencies,
    parse_catalog_entries,
    resolve_user,
    seed_catalog,
)
from investments_service.services.ledger import CryptoAsset
from investments_service.services.market_client import fetch_market_prices, refresh_catalog_prices

MARKET_PAYLOAD = [
    {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "current_price": 67250.5,
        "last_updated": "2025-05-28T11:46:32.845Z",
        "price_change_24h": 120.1,
        "price_change_percentage_24h": 0.18,
        "image": "https://example.invalid/btc.png",
    },
    {
        "id": "ethereum",
        "symbol": "ETH",
        "name": "Ethereum",
        "current_price": "3120.75",
        "last_updated": None,
    },
]


def test_parse_catalog_entries_normalises_market_rows():
    bitcoin, ethereum = parse_catalog_entries(MARKET_PAYLOAD)

    assert bitcoin.id == "bitcoin"
    assert bitcoin.current_price == Decimal("67250.5")
    assert bitcoin.last_updated == datetime(2025, 5, 28, 11, 46, 32, 845000, tzinfo=timezone.utc)
    assert bitcoin.price_change_24h == Decimal("120.1")
    assert bitcoin.image == "https://example.invalid/btc.png"
    assert ethereum.price_change_percentage_24h is None
    assert ethereum.image is None
    assert ethereum.symbol == "eth"
    assert ethereum.current_price == Decimal("3120.75")
    assert ethereum.last_updated.tzinfo is not None


def test_parse_catalog_entries_requires_identity_and_price():
    with pytest.raises(ValueError, match="current_price"):
        parse_catalog_entries([{"id": "tether", "symbol": "usdt", "name": "Tether"}])


def test_load_catalog_file_accepts_paged_payload(tmp_path: Path):
    seed = tmp_path / "catalog.json"
    seed.write_text(json.dumps({"content": MARKET_PAYLOAD, "totalElements": 2}))

    assets = load_catalog_file(seed)

    assert [asset.id for asset in assets] == ["bitcoin", "ethereum"]


async def test_seed_catalog_upserts_prices(sqlite_database, assets):
    await sqlite_database.create_all()
    try:
        async with sqlite_database.session() as session:
            await seed_catalog(session, assets)
            await seed_catalog(session, parse_catalog_entries(MARKET_PAYLOAD))

            records = await list_cryptocurrencies(session)
            bitcoin = await get_cryptocurrency(session, " BITCOIN ")

        assert [record.id for record in records] == ["bitcoin", "ethereum", "solana"]
        assert Decimal(str(bitcoin.current_price)) == Decimal("67250.5")
    finally:
        await sqlite_database.dispose()


async def test_resolve_user_only_creates_when_asked(sqlite_database):
    await sqlite_database.create_all()
    try:
        async with sqlite_database.session() as session:
            assert await resolve_user(session, "alice") is None
            created = await resolve_user(session, " alice ", create=True)
            again = await resolve_user(session, "alice", create=True)
            assert await resolve_user(session, "   ", create=True) is None

        assert created.id == again.id
        assert created.external_id == "alice"
    finally:
        await sqlite_database.dispose()


async def test_fetch_market_prices_queries_provider():
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["ids"] = request.url.params["ids"]
        seen["currency"] = request.url.params["vs_currency"]
        return httpx.Response(200, json=MARKET_PAYLOAD)

    settings = InvestmentsSettings(market_data_url="https://market.test/api/v3/")
    assets = await fetch_market_prices(settings, ["bitcoin", "ethereum"], transport=httpx.MockTransport(handler))

    assert seen == {"path": "/api/v3/coins/markets", "ids": "bitcoin,ethereum", "currency": "usd"}
    assert [asset.id for asset in assets] == ["bitcoin", "ethereum"]


async def test_fetch_market_prices_raises_on_provider_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "busy"}))

    with pytest.raises(httpx.HTTPStatusError):
        await fetch_market_prices(InvestmentsSettings(), transport=transport)


async def test_refresh_catalog_prices_persists_market_rows(sqlite_database):
    await sqlite_database.create_all()
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=MARKET_PAYLOAD))
    try:
        async with sqlite_database.session() as session:
            refreshed = await refresh_catalog_prices(session, InvestmentsSettings(), transport=transport)
            records = await list_cryptocurrencies(session)

        assert refreshed == 2
        assert [record.symbol for record in records] == ["btc", "eth"]
    finally:
        await sqlite_database.dispose()


async def test_catalog_pages_are_numbered_from_zero(sqlite_database, assets):
    await sqlite_database.create_all()
    try:
        async with sqlite_database.session() as session:
            await seed_catalog(session, assets)
            first = await page_cryptocurrencies(session, page=0, size=2)
            last = await page_cryptocurrencies(session, page=1, size=2)
            beyond = await page_cryptocurrencies(session, page=5, size=2)
            with pytest.raises(ValueError):
                await page_cryptocurrencies(session, page=-1)

        assert [asset.id for asset in first.items] == ["bitcoin", "ethereum"]
        assert (first.total_elements, first.total_pages, first.first, first.last) == (3, 2, True, False)
        assert [asset.id for asset in last.items] == ["solana"]
        assert last.last is True
        assert beyond.items == []
    finally:
        await sqlite_database.dispose()


async def test_refreshes_build_a_one_day_price_series(sqlite_database, assets, fixed_clock):
    def bitcoin_at(price: str, hours_ago: int) -> CryptoAsset:
        return CryptoAsset(
            id="bitcoin",
            symbol="btc",
            name="Bitcoin",
            current_price=Decimal(price),
            last_updated=fixed_clock() - timedelta(hours=hours_ago),
        )

    await sqlite_database.create_all()
    try:
        async with sqlite_database.session() as session:
            await seed_catalog(session, [bitcoin_at("40000", 30), bitcoin_at("48000", 20), bitcoin_at("49000", 2)])
            await seed_catalog(session, assets)
            # a second refresh at the same instant replaces the sample
            await seed_catalog(session, [bitcoin_at("50500", 0)])
            points = await list_daily_prices(session, "bitcoin")
            untouched = await list_daily_prices(session, "tether")

        assert [Decimal(str(point.price)) for point in points] == [Decimal("48000"), Decimal("49000"), Decimal("50500")]
        assert untouched == []
    finally:
        await sqlite_database.dispose()
