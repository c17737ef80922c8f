import asyncio
import inspect
import pathlib
import sys
from datetime import datetime, timezone
from decimal import Decimal

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from investments_service.db.session import Database  # noqa: E402
from investments_service.services.ledger import CryptoAsset  # noqa: E402

FIXED_NOW = datetime(2025, 5, 28, 11, 46, 32, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        argnames = pyfuncitem._fixtureinfo.argnames
        kwargs = {name: pyfuncitem.funcargs[name] for name in argnames}
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            loop.run_until_complete(test_function(**kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


@pytest.fixture
def assets() -> list[CryptoAsset]:
    return [
        CryptoAsset(id="bitcoin", symbol="btc", name="Bitcoin", current_price=Decimal("50000"), last_updated=FIXED_NOW),
        CryptoAsset(id="ethereum", symbol="eth", name="Ethereum", current_price=Decimal("3000"), last_updated=FIXED_NOW),
        CryptoAsset(id="solana", symbol="sol", name="Solana", current_price=Decimal("150"), last_updated=FIXED_NOW),
    ]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def sqlite_database(tmp_path: pathlib.Path) -> Database:
    return Database(url=f"sqlite+aiosqlite:///{tmp_path / 'investments.db'}")
