"""Model exports for the investments service."""

from .outbox import PortfolioOutbox
from .portfolio import (
    CryptoDailyPrice,
    CryptoTransaction,
    Cryptocurrency,
    Holding,
    PortfolioUser,
    TRANSACTION_TYPES,
)

__all__ = [
    "CryptoDailyPrice",
    "CryptoTransaction",
    "Cryptocurrency",
    "Holding",
    "PortfolioOutbox",
    "PortfolioUser",
    "TRANSACTION_TYPES",
]
