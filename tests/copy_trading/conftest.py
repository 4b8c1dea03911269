"""
Copy-trading fixtures.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from core.context import UserContext
from copy_trading.service import CopyTradingService
from copy_trading.settlement import ProfitSettlementService
from copy_trading.vip import VipTierService
from tests.conftest import START


EXPIRATION = START + timedelta(days=1)


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def copy_service(session_factory, clock, notifier):
    return CopyTradingService(session_factory, clock=clock, notifier=notifier)


@pytest.fixture
def settlement_service(session_factory, clock, notifier):
    return ProfitSettlementService(session_factory, clock=clock, max_attempts=3, notifier=notifier)


@pytest.fixture
def vip_service(session_factory):
    return VipTierService(session_factory)


@pytest.fixture
def spot_owner_order(copy_service):
    """BTC_USDT buy at 100, qty 2, owner percentage 1%."""
    return copy_service.place_spot_owner_order(
        "admin",
        symbol="BTC_USDT",
        side="buy",
        order_type="limit",
        quantity=Decimal("2"),
        price=Decimal("100"),
        limit_price=Decimal("50"),
        expiration=EXPIRATION,
        percentage=Decimal("1"),
    )


@pytest.fixture
def futures_owner_order(copy_service):
    """BTC_USDT long, trigger 200, size 3."""
    return copy_service.place_futures_owner_order(
        "admin",
        symbol="BTC_USDT",
        side="buy",
        order_type="limit",
        size=Decimal("3"),
        trigger_price=Decimal("200"),
        expiration=EXPIRATION,
    )


@pytest.fixture
def gold_tier(vip_service):
    return vip_service.create_tier("Gold", 2, Decimal("3"))


def user(user_id="u1", vip_tier_id=None):
    return UserContext(user_id=user_id, vip_tier_id=vip_tier_id)
