"""Crypto portfolio ledger for the budgeting investments service."""
