"""Route registration helpers."""

from __future__ import annotations

from .cryptocurrency import router as cryptocurrency_router
from .portfolio import router as portfolio_router

__all__ = ["cryptocurrency_router", "portfolio_router"]
