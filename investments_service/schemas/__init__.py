"""Schema exports for the investments service."""

from .portfolio import (
    CryptoDailyPriceSchema,
    CryptoTransactionRequest,
    CryptoTransactionSchema,
    CryptocurrencyPageSchema,
    CryptocurrencySchema,
    PortfolioEntrySchema,
    TransactionReceiptSchema,
)

__all__ = [
    "CryptoDailyPriceSchema",
    "CryptoTransactionRequest",
    "CryptoTransactionSchema",
    "CryptocurrencyPageSchema",
    "CryptocurrencySchema",
    "PortfolioEntrySchema",
    "TransactionReceiptSchema",
]
