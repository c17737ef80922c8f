"""Service-layer exports."""

from .catalog import (
    CatalogPage,
    get_cryptocurrency,
    get_user,
    list_cryptocurrencies,
    list_daily_prices,
    load_catalog_file,
    page_cryptocurrencies,
    parse_catalog_entries,
    resolve_user,
    seed_catalog,
    upsert_cryptocurrency,
)
from .ledger import (
    CryptoAsset,
    InMemoryPortfolioLedger,
    PortfolioEntry,
    PortfolioLedger,
    TransactionRecord,
)
from .outbox import enqueue_portfolio_event, list_pending_events
from .results import LedgerError, LedgerErrorKind, LedgerOperationError, LedgerResult
from .sql_ledger import SqlPortfolioLedger, build_ledger

__all__ = [
    "CatalogPage",
    "CryptoAsset",
    "InMemoryPortfolioLedger",
    "LedgerError",
    "LedgerErrorKind",
    "LedgerOperationError",
    "LedgerResult",
    "PortfolioEntry",
    "PortfolioLedger",
    "SqlPortfolioLedger",
    "TransactionRecord",
    "build_ledger",
    "enqueue_portfolio_event",
    "get_cryptocurrency",
    "get_user",
    "list_cryptocurrencies",
    "list_daily_prices",
    "list_pending_events",
    "load_catalog_file",
    "page_cryptocurrencies",
    "parse_catalog_entries",
    "resolve_user",
    "seed_catalog",
    "upsert_cryptocurrency",
]
