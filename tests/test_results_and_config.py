from __future__ import annotations

import logging
from decimal import Decimal

import pytest
from pydantic import ValidationError

from investments_service.core.config import InvestmentsSettings, get_settings
from investments_service.core.logging import setup_logging
from investments_service.services.results import LedgerErrorKind, LedgerOperationError, LedgerResult


def test_success_result_is_truthy_and_unwraps():
    result = LedgerResult.success("tx-1")

    assert result.ok
    assert bool(result) is True
    assert result.unwrap() == "tx-1"


def test_failure_result_is_falsy_and_raises_on_unwrap():
    result = LedgerResult.failure(LedgerErrorKind.INSUFFICIENT_BALANCE, "not enough")

    assert not result
    assert result.value is None
    with pytest.raises(LedgerOperationError, match="not enough") as excinfo:
        result.unwrap()
    assert excinfo.value.error.kind is LedgerErrorKind.INSUFFICIENT_BALANCE


def test_successful_zero_balance_is_still_truthy():
    assert bool(LedgerResult.success(Decimal("0"))) is True


def test_settings_overrides_and_logging_mask():
    settings = InvestmentsSettings(internal_auth_token="secret", include_empty_holdings=True)

    logged = settings.dict_for_logging()

    assert logged["internal_auth_token"] == "***"
    assert logged["include_empty_holdings"] is True
    assert InvestmentsSettings().dict_for_logging()["internal_auth_token"] is None


def test_get_settings_builds_fresh_settings_for_overrides():
    overridden = get_settings(api_prefix="/investments")

    assert overridden.api_prefix == "/investments"
    assert get_settings() is get_settings()


def test_setup_logging_is_idempotent():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging()
        setup_logging()
        added = [handler for handler in root.handlers if handler not in before]
        assert len(added) == 1
        assert logging.getLogger("sqlalchemy").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)


def test_amount_scale_is_bounded_by_stored_precision():
    assert InvestmentsSettings(amount_scale=10).amount_scale == 10
    with pytest.raises(ValidationError):
        InvestmentsSettings(amount_scale=11)
