"""Translate ledger failures into HTTP responses."""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..services.results import LedgerErrorKind, LedgerOperationError

LEDGER_ERROR_STATUS = {
    LedgerErrorKind.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    LedgerErrorKind.INVALID_ASSET: status.HTTP_404_NOT_FOUND,
    LedgerErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LedgerErrorKind.INSUFFICIENT_BALANCE: status.HTTP_409_CONFLICT,
}


async def ledger_error_handler(request: Request, exc: LedgerOperationError) -> JSONResponse:
    # Web clients read ``message`` from the top level of the body.
    return JSONResponse(
        status_code=LEDGER_ERROR_STATUS[exc.kind],
        content={"error": exc.kind.value, "message": exc.error.message, "detail": exc.error.message},
    )


__all__ = ["LEDGER_ERROR_STATUS", "ledger_error_handler"]
