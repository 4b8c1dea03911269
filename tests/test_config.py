"""
Tests for configuration and request identity.
"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from core.config import FeePolicyConfig, LedgerConfig, SchedulerConfig
from core.context import UserContext, current_admin, current_user
from core.exceptions import ValidationError


class TestLedgerConfig:
    """Environment loading and validation."""

    def test_defaults_are_valid(self):
        config = LedgerConfig()

        assert config.validate() == []
        assert config.fees.penalty_rate == Decimal("0.20")
        assert config.fees.volume_multiplier == Decimal("2")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        monkeypatch.setenv("PENALTY_FEE_RATE", "0.1")
        monkeypatch.setenv("SCHEDULER_ENABLED", "false")

        config = LedgerConfig.from_env()

        assert config.database.url == "sqlite:///:memory:"
        assert config.fees.penalty_rate == Decimal("0.1")
        assert config.scheduler.enabled is False

    def test_validate_reports_errors(self):
        config = LedgerConfig(
            fees=FeePolicyConfig(penalty_rate=Decimal("1.5")),
            scheduler=SchedulerConfig(interval_seconds=0, max_settlement_attempts=0),
        )

        errors = config.validate()

        assert len(errors) == 3

    def test_for_testing_disables_scheduler(self):
        config = LedgerConfig.for_testing()

        assert config.scheduler.enabled is False
        assert not config.notifications.telegram_enabled


class TestUserContext:
    """Identity headers."""

    def test_blank_user_rejected(self):
        with pytest.raises(ValidationError):
            UserContext(user_id=" ")

    def test_current_user_from_headers(self):
        user = current_user(x_user_id="u1", x_vip_tier_id="tier-1", x_user_role="admin")

        assert user == UserContext(user_id="u1", vip_tier_id="tier-1", is_admin=True)

    def test_missing_header_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            current_user(x_user_id=None, x_vip_tier_id=None, x_user_role=None)

        assert exc_info.value.status_code == 401

    def test_non_admin_is_403(self):
        with pytest.raises(HTTPException) as exc_info:
            current_admin(UserContext(user_id="u1"))

        assert exc_info.value.status_code == 403
