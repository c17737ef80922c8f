"""Tagged results returned by every ledger operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class LedgerErrorKind(str, Enum):
    INVALID_ASSET = "invalid_asset"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    USER_NOT_FOUND = "user_not_found"
    INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class LedgerError:
    kind: LedgerErrorKind
    message: str


class LedgerOperationError(Exception):
    """Raised by :meth:`LedgerResult.unwrap` when the operation failed."""

    def __init__(self, error: LedgerError):
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> LedgerErrorKind:
        return self.error.kind


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    """Either a value or a :class:`LedgerError`.

    The result is truthy exactly when the operation succeeded, so callers that
    only need a success flag can test it directly.
    """

    value: T | None = None
    error: LedgerError | None = None

    @classmethod
    def success(cls, value: T) -> "LedgerResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: LedgerErrorKind, message: str) -> "LedgerResult[T]":
        return cls(error=LedgerError(kind=kind, message=message))

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> T:
        if self.error is not None:
            raise LedgerOperationError(self.error)
        return self.value  # type: ignore[return-value]


__all__ = [
    "LedgerError",
    "LedgerErrorKind",
    "LedgerOperationError",
    "LedgerResult",
]
