"""Domain event outbox."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PortfolioOutbox


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


async def enqueue_portfolio_event(session: AsyncSession, event_type: str, payload: dict[str, Any]) -> None:
    event = PortfolioOutbox(
        event_type=event_type,
        payload={key: _jsonable(value) for key, value in payload.items()},
        status="pending",
    )
    session.add(event)
    await session.flush()


async def list_pending_events(session: AsyncSession, limit: int = 100) -> list[PortfolioOutbox]:
    result = await session.execute(
        select(PortfolioOutbox)
        .where(PortfolioOutbox.status == "pending")
        .order_by(PortfolioOutbox.created_at, PortfolioOutbox.id)
        .limit(limit)
    )
    return list(result.scalars().all())


__all__ = ["enqueue_portfolio_event", "list_pending_events"]
