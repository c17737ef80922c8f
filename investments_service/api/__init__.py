"""HTTP adapter for the portfolio ledger."""
