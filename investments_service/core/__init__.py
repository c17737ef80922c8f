"""Configuration, logging and telemetry for the investments service."""

from .config import InvestmentsSettings, get_settings

__all__ = ["InvestmentsSettings", "get_settings"]
