"""Entry point for the investments service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.baggage import get_baggage

from .api.errors import ledger_error_handler
from .api.routes import cryptocurrency_router, portfolio_router
from .core.config import InvestmentsSettings, get_settings
from .core.logging import setup_logging
from .core.telemetry import setup_telemetry
from .db.session import Database
from .services.ledger import PortfolioLedger
from .services.results import LedgerOperationError
from .services.sql_ledger import build_ledger

logger = logging.getLogger("investments_service")


def create_app(
    settings: InvestmentsSettings | None = None,
    database: Database | None = None,
    ledger: PortfolioLedger | None = None,
) -> FastAPI:
    """Build the application with explicitly wired collaborators."""

    settings = settings or get_settings()
    database = database or Database(settings.database_url)
    ledger = ledger or build_ledger(settings, database)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        await database.create_all()
        logger.info("Investments service configuration", extra=settings.dict_for_logging())
        yield
        await database.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=_lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.ledger = ledger
    setup_telemetry(app, settings, database.engine)
    app.add_exception_handler(LedgerOperationError, ledger_error_handler)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # Attach end-user attributes from W3C Baggage to the active server span
    @app.middleware("http")
    async def _attach_user_baggage(request, call_next):  # type: ignore[no-redef]
        span = trace.get_current_span()
        try:
            for key in ("enduser.id", "enduser.role", "enduser.email"):
                val = get_baggage(key)
                if val:
                    span.set_attribute(key, val)
        except Exception:  # best-effort only
            pass
        return await call_next(request)

    app.include_router(portfolio_router, prefix=settings.api_prefix, tags=["portfolio"])
    app.include_router(cryptocurrency_router, prefix=settings.catalog_prefix, tags=["cryptocurrency"])
    return app


def get_app() -> FastAPI:
    """Factory for ``uvicorn --factory investments_service.main:get_app``."""

    setup_logging()
    return create_app()


__all__ = ["create_app", "get_app"]
