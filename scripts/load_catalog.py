"""Load a cryptocurrency catalog fixture (or live market data) into the database."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from investments_service.core.config import get_settings
from investments_service.core.logging import setup_logging
from investments_service.db.session import Database
from investments_service.services.catalog import load_catalog_file, seed_catalog
from investments_service.services.market_client import refresh_catalog_prices


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        await database.create_all()
        async with database.session() as session:
            if args.live:
                return await refresh_catalog_prices(session, settings, args.ids or None)
            seed_path = Path(args.seed_file)
            if not seed_path.exists():
                raise SystemExit(f"Seed file not found: {seed_path}")
            return await seed_catalog(session, load_catalog_file(seed_path))
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the cryptocurrency catalog")
    parser.add_argument("seed_file", nargs="?", default="crypto_catalog.json")
    parser.add_argument("--live", action="store_true", help="Fetch current prices from the market data provider")
    parser.add_argument("--ids", nargs="*", default=[], help="Restrict a live refresh to these crypto ids")
    args = parser.parse_args()
    setup_logging()
    count = asyncio.run(_run(args))
    print(f"Catalog now holds {count} refreshed cryptocurrencies")


if __name__ == "__main__":
    main()
