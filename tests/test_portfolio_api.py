from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from decimal import Decimal

from httpx import ASGITransport, AsyncClient

from investments_service.core.config import InvestmentsSettings
from investments_service.db.session import Database
from investments_service.main import create_app
from investments_service.services.catalog import seed_catalog
from investments_service.services.ledger import CryptoAsset, InMemoryPortfolioLedger


def _settings(database: Database, **overrides) -> InvestmentsSettings:
    return InvestmentsSettings(database_url=database.url, **overrides)


@asynccontextmanager
async def _client(database: Database, assets, **overrides):
    app = create_app(settings=_settings(database, **overrides), database=database)
    async with app.router.lifespan_context(app):
        async with database.session() as session:
            await seed_catalog(session, assets)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


async def test_buy_sell_and_list_flow(sqlite_database, assets):
    async with _client(sqlite_database, assets) as api_client:
        headers = {"X-User-Id": "alice"}
        bought = await api_client.post(
            "/portfolio/buycrypto",
            json={"cryptoId": "bitcoin", "amount": 2, "dateTime": "2025-05-12T14:45:00"},
            headers=headers,
        )
        assert bought.status_code == 201
        assert bought.json()["transactionId"]

        oversold = await api_client.post(
            "/portfolio/sellcrypto", json={"cryptoId": "bitcoin", "amount": 3}, headers=headers
        )
        assert oversold.status_code == 409
        assert oversold.json()["error"] == "insufficient_balance"
        assert "available 2" in oversold.json()["message"]

        sold = await api_client.post(
            "/portfolio/sellcrypto", json={"cryptoId": "bitcoin", "amount": 1}, headers=headers
        )
        assert sold.status_code == 201

        portfolio = await api_client.get("/portfolio/getportfolio", headers=headers)
        assert portfolio.status_code == 200
        [entry] = portfolio.json()
        assert entry["cryptoName"] == "bitcoin"
        assert entry["amount"] == 1.0
        assert entry["unitPrice"] == 50000.0
        assert entry["currentPrice"] == 50000.0
        assert "last_update" in entry

        history = await api_client.get("/portfolio/transactions", headers=headers)
        assert [item["type"] for item in history.json()] == ["SELL", "BUY"]


async def test_error_kinds_map_to_status_codes(sqlite_database, assets):
    async with _client(sqlite_database, assets) as api_client:
        headers = {"X-User-Id": "alice"}
        unknown = await api_client.post(
            "/portfolio/buycrypto", json={"cryptoId": "dogecoin", "amount": 1}, headers=headers
        )
        negative = await api_client.post(
            "/portfolio/buycrypto", json={"cryptoId": "bitcoin", "amount": -1}, headers=headers
        )

        assert unknown.status_code == 404
        assert unknown.json()["error"] == "invalid_asset"
        assert unknown.json()["message"] == "Unknown cryptocurrency 'dogecoin'"
        assert negative.status_code == 422
        assert negative.json()["error"] == "invalid_amount"
        assert negative.json()["message"].startswith("Amount must be a positive number")


async def test_unknown_user_when_provisioning_disabled(sqlite_database, assets):
    async with _client(sqlite_database, assets, auto_provision_users=False) as api_client:
        response = await api_client.get("/portfolio/getportfolio", headers={"X-User-Id": "ghost"})

        assert response.status_code == 404
        assert response.json()["error"] == "user_not_found"


async def test_requests_need_user_context(sqlite_database, assets):
    async with _client(sqlite_database, assets) as api_client:
        response = await api_client.get("/portfolio/getportfolio")

        assert response.status_code == 401


async def test_internal_token_is_enforced_when_configured(sqlite_database, assets):
    async with _client(sqlite_database, assets, internal_auth_token="s3cret") as api_client:
        denied = await api_client.get("/portfolio/getportfolio", headers={"X-User-Id": "alice"})
        allowed = await api_client.get(
            "/portfolio/getportfolio", headers={"X-User-Id": "alice", "X-Internal-Token": "s3cret"}
        )

        assert denied.status_code == 401
        assert allowed.status_code == 200
        assert allowed.json() == []


async def test_catalog_pages_and_health(sqlite_database, assets):
    async with _client(sqlite_database, assets) as api_client:
        health = await api_client.get("/health")
        first = await api_client.get("/cryptocurrency/getlist", params={"page": 0, "size": 2})
        second = await api_client.get("/cryptocurrency/getlist", params={"page": 1, "size": 2})

        assert health.json() == {"status": "ok"}
        body = first.json()
        assert [item["id"] for item in body["content"]] == ["bitcoin", "ethereum"]
        assert (body["number"], body["size"], body["totalPages"], body["totalElements"]) == (0, 2, 2, 3)
        assert body["first"] is True and body["last"] is False
        assert [item["id"] for item in second.json()["content"]] == ["solana"]
        assert second.json()["last"] is True
        assert second.json()["numberOfElements"] == 1


async def test_catalog_carries_market_fields(sqlite_database, fixed_clock):
    market = [
        CryptoAsset(
            id="bitcoin",
            symbol="btc",
            name="Bitcoin",
            current_price=Decimal("67250.5"),
            last_updated=fixed_clock(),
            price_change_24h=Decimal("-120.25"),
            price_change_percentage_24h=Decimal("-0.5"),
            image="https://example.invalid/btc.png",
        )
    ]
    async with _client(sqlite_database, market) as api_client:
        [item] = (await api_client.get("/cryptocurrency/getlist")).json()["content"]

    assert item["price_change_24h"] == -120.25
    assert item["price_change_percentage_24h"] == -0.5
    assert item["image"] == "https://example.invalid/btc.png"


async def test_daily_price_series(sqlite_database, assets, fixed_clock):
    async with _client(sqlite_database, assets) as api_client:
        later = CryptoAsset(
            id="bitcoin", symbol="btc", name="Bitcoin", current_price=Decimal("51000"),
            last_updated=fixed_clock() + timedelta(hours=1),
        )
        async with sqlite_database.session() as session:
            await seed_catalog(session, [later])

        series = await api_client.get("/cryptocurrency/dailyprice", params={"cryptoId": "Bitcoin"})
        missing = await api_client.get("/cryptocurrency/dailyprice", params={"cryptoId": "dogecoin"})

        assert series.status_code == 200
        assert [point["price"] for point in series.json()] == [50000.0, 51000.0]
        assert "dateTime" in series.json()[0]
        assert missing.status_code == 404
        assert missing.json()["error"] == "invalid_asset"


async def test_app_accepts_an_explicit_ledger(sqlite_database, assets, fixed_clock):
    ledger = InMemoryPortfolioLedger(assets, clock=fixed_clock)
    app = create_app(settings=_settings(sqlite_database), database=sqlite_database, ledger=ledger)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as api_client:
            response = await api_client.post(
                "/portfolio/buycrypto",
                json={"cryptoId": "ethereum", "amount": "1.5"},
                headers={"X-User-Id": "alice"},
            )
            portfolio = await api_client.get("/portfolio/getportfolio", headers={"X-User-Id": "alice"})

    assert response.status_code == 201
    assert portfolio.json()[0]["currentPrice"] == 4500.0
