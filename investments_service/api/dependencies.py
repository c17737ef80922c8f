"""Shared FastAPI dependencies for the investments service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import InvestmentsSettings
from ..services.ledger import PortfolioLedger


def get_app_settings(request: Request) -> InvestmentsSettings:
    return request.app.state.settings


def get_ledger(request: Request) -> PortfolioLedger:
    return request.app.state.ledger


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    async for session in request.app.state.database.get_session():  # pragma: no cover - FastAPI dependency wrapper
        yield session


def verify_internal_token(
    x_internal_token: str | None = Header(default=None),
    settings: InvestmentsSettings = Depends(get_app_settings),
) -> None:
    if settings.internal_auth_token is None:
        return
    if x_internal_token != settings.internal_auth_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid internal token")


InternalAuth = Depends(verify_internal_token)


@dataclass
class RequestContext:
    user_id: str


def get_request_context(x_user_id: str | None = Header(default=None)) -> RequestContext:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user context")
    return RequestContext(user_id=x_user_id.strip())


__all__ = [
    "InternalAuth",
    "RequestContext",
    "get_app_settings",
    "get_db_session",
    "get_ledger",
    "get_request_context",
]
