"""
Tests for VIP tier management.
"""

from decimal import Decimal

import pytest

from core.exceptions import NotFoundError, ValidationError
from database.engine import transaction_scope
from copy_trading.vip import resolve_tier


class TestVipTierService:
    """Admin tier management."""

    def test_create_and_list(self, vip_service):
        vip_service.create_tier("Silver", 1, "2")
        vip_service.create_tier("Gold", 2, "3")

        tiers = vip_service.list_tiers()

        assert [t.name for t in tiers] == ["Silver", "Gold"]
        assert tiers[1].percentage == Decimal("3")

    def test_duplicate_name(self, vip_service):
        vip_service.create_tier("Gold", 2, "3")

        with pytest.raises(ValidationError):
            vip_service.create_tier("Gold", 5, "9")

    @pytest.mark.parametrize("kwargs", [
        {"name": " ", "level": 1, "percentage": "1"},
        {"name": "X", "level": -1, "percentage": "1"},
        {"name": "X", "level": 1, "percentage": "-1"},
        {"name": "X", "level": 1, "percentage": "1", "status": "paused"},
    ])
    def test_invalid_input(self, vip_service, kwargs):
        with pytest.raises(ValidationError):
            vip_service.create_tier(**kwargs)


class TestResolveTier:
    """Tier references as seen by the futures gate."""

    def test_resolve(self, vip_service, session_factory):
        tier = vip_service.create_tier("Gold", 2, "3")

        with transaction_scope(session_factory) as session:
            resolved = resolve_tier(session, tier.id)
            assert resolve_tier(session, None) is None

        assert resolved.level == 2
        assert resolved.percentage == Decimal("3")

    def test_inactive_resolves_to_level_zero(self, vip_service, session_factory):
        tier = vip_service.create_tier("Old", 4, "3", status="inactive")

        with transaction_scope(session_factory) as session:
            assert resolve_tier(session, tier.id).level == 0

    def test_resolve_unknown(self, session_factory):
        with pytest.raises(NotFoundError):
            with transaction_scope(session_factory) as session:
                resolve_tier(session, "missing")
