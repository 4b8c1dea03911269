"""
Tests for the Copy-Order Engine.

============================================================
PURPOSE
============================================================
1. Owner order placement and validation
2. Follow validation order (not found, expired, duplicate,
   balance, VIP tier)
3. Simulated final price
4. Queries, including the admin order views

============================================================
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import (
    AlreadyFollowingError,
    ExpiredError,
    IneligibleError,
    InsufficientTradeBalanceError,
    NotFoundError,
    ValidationError,
)
from database.engine import transaction_scope
from database.models import CopyOrder
from notifications.dispatcher import NotificationEvent
from copy_trading.types import OrderStatus
from tests.copy_trading.conftest import EXPIRATION, user


# ============================================================
# OWNER ORDERS
# ============================================================

class TestOwnerOrders:
    """Admin placement of copyable orders."""

    def test_spot_owner_order(self, spot_owner_order, clock):
        assert spot_owner_order.owner is True
        assert spot_owner_order.status == OrderStatus.PENDING.value
        assert len(spot_owner_order.copy_code) == 6
        assert spot_owner_order.copy_code.isalnum()
        assert spot_owner_order.created_at == clock.now()

    def test_futures_price_way_follows_side(self, copy_service):
        order = copy_service.place_futures_owner_order(
            "admin", symbol="ETH_USDT", side="sell", order_type="market",
            size="1", trigger_price="10",
        )

        assert order.price_way == 2
        assert order.executive_price == Decimal("10")
        assert order.leverage == "10"
        assert order.open_type == "cross"

    def test_copy_codes_are_unique(self, copy_service):
        codes = {
            copy_service.place_spot_owner_order(
                "admin", "BTC_USDT", "buy", "limit", "1", price="1",
            ).copy_code
            for _ in range(5)
        }
        assert len(codes) == 5

    @pytest.mark.parametrize("percentage", ["0.05", "101"])
    def test_percentage_bounds(self, copy_service, percentage):
        with pytest.raises(ValidationError):
            copy_service.place_spot_owner_order(
                "admin", "BTC_USDT", "buy", "limit", "1", price="1", percentage=percentage,
            )

    def test_invalid_side(self, copy_service):
        with pytest.raises(ValidationError):
            copy_service.place_spot_owner_order("admin", "BTC_USDT", "hold", "limit", "1", price="1")


# ============================================================
# FOLLOW - SPOT
# ============================================================

class TestFollowSpot:
    """Following spot owner orders."""

    def test_follow_creates_pending_profit_order(self, copy_service, spot_owner_order, fund, balance_of, notifier):
        fund("u1", "spot", "100")

        order = copy_service.follow_spot(user(), spot_owner_order.copy_code)

        assert order.owner is False
        assert order.status == OrderStatus.PENDING_PROFIT.value
        assert order.source_order_id == spot_owner_order.id
        assert order.expiration == EXPIRATION
        assert order.average_execution_price == Decimal("101")
        assert order.executed_quantity == Decimal("2")
        assert order.quote_asset_id == "1280"
        assert len(order.fills) == 1
        assert order.fills[0].price == Decimal("101")
        # Following never moves funds
        assert balance_of("u1", "spot").balance == Decimal("100")
        assert notifier.notify.call_args[0][0] == NotificationEvent.ORDER_FOLLOWED

    def test_sell_side_prices_downward(self, copy_service, fund):
        fund("u1", "spot", "100")
        owner = copy_service.place_spot_owner_order(
            "admin", "BTC_USDT", "sell", "limit", "1", price="100",
            expiration=EXPIRATION, percentage="5",
        )

        order = copy_service.follow_spot(user(), owner.copy_code)

        assert order.average_execution_price == Decimal("95")

    def test_unknown_code(self, copy_service):
        with pytest.raises(NotFoundError):
            copy_service.follow_spot(user(), "NOPE00")

    def test_futures_code_not_followable_as_spot(self, copy_service, futures_owner_order, fund):
        fund("u1", "spot", "100")

        with pytest.raises(NotFoundError):
            copy_service.follow_spot(user(), futures_owner_order.copy_code)

    def test_expired(self, copy_service, spot_owner_order, fund, clock):
        fund("u1", "spot", "100")
        clock.set_time(EXPIRATION + timedelta(seconds=1))

        with pytest.raises(ExpiredError):
            copy_service.follow_spot(user(), spot_owner_order.copy_code)

    def test_duplicate_follow(self, copy_service, spot_owner_order, fund, session_factory):
        fund("u1", "spot", "100")
        copy_service.follow_spot(user(), spot_owner_order.copy_code)

        with pytest.raises(AlreadyFollowingError):
            copy_service.follow_spot(user(), spot_owner_order.copy_code)

        with transaction_scope(session_factory) as session:
            count = session.query(CopyOrder).filter_by(user_id="u1").count()
        assert count == 1

    def test_other_users_can_follow_same_code(self, copy_service, spot_owner_order, fund):
        fund("u1", "spot", "100")
        fund("u2", "spot", "100")

        first = copy_service.follow_spot(user("u1"), spot_owner_order.copy_code)
        second = copy_service.follow_spot(user("u2"), spot_owner_order.copy_code)

        assert first.id != second.id

    def test_balance_below_limit_price(self, copy_service, spot_owner_order, fund):
        fund("u1", "spot", "49.99")

        with pytest.raises(InsufficientTradeBalanceError):
            copy_service.follow_spot(user(), spot_owner_order.copy_code)

    def test_missing_balance_row(self, copy_service, spot_owner_order):
        with pytest.raises(InsufficientTradeBalanceError):
            copy_service.follow_spot(user(), spot_owner_order.copy_code)

    def test_exchange_balance_does_not_count(self, copy_service, spot_owner_order, fund):
        fund("u1", "exchange", "1000")

        with pytest.raises(InsufficientTradeBalanceError):
            copy_service.follow_spot(user(), spot_owner_order.copy_code)


# ============================================================
# FOLLOW - FUTURES
# ============================================================

class TestFollowFutures:
    """Futures follows are gated by VIP tier."""

    def test_tier_percentage_sets_price(self, copy_service, futures_owner_order, gold_tier, fund):
        fund("u1", "futures", "10")

        order = copy_service.follow_futures(user(vip_tier_id=gold_tier.id), futures_owner_order.copy_code)

        assert order.average_execution_price == Decimal("206")
        assert order.percentage == Decimal("3")
        assert order.status == OrderStatus.PENDING_PROFIT.value

    def test_short_prices_downward(self, copy_service, gold_tier, fund):
        fund("u1", "futures", "10")
        owner = copy_service.place_futures_owner_order(
            "admin", "BTC_USDT", "sell", "limit", size="1", trigger_price="200",
            expiration=EXPIRATION,
        )

        order = copy_service.follow_futures(user(vip_tier_id=gold_tier.id), owner.copy_code)

        assert order.average_execution_price == Decimal("194")

    def test_no_tier(self, copy_service, futures_owner_order, fund):
        fund("u1", "futures", "10")

        with pytest.raises(IneligibleError):
            copy_service.follow_futures(user(), futures_owner_order.copy_code)

    def test_level_zero_tier(self, copy_service, futures_owner_order, vip_service, fund):
        fund("u1", "futures", "10")
        basic = vip_service.create_tier("Basic", 0, "1")

        with pytest.raises(IneligibleError):
            copy_service.follow_futures(user(vip_tier_id=basic.id), futures_owner_order.copy_code)

    def test_inactive_tier(self, copy_service, futures_owner_order, vip_service, fund):
        fund("u1", "futures", "10")
        retired = vip_service.create_tier("Retired", 3, "5", status="inactive")

        with pytest.raises(IneligibleError):
            copy_service.follow_futures(user(vip_tier_id=retired.id), futures_owner_order.copy_code)

    def test_unknown_tier(self, copy_service, futures_owner_order, fund):
        fund("u1", "futures", "10")

        with pytest.raises(NotFoundError):
            copy_service.follow_futures(user(vip_tier_id="missing"), futures_owner_order.copy_code)

    def test_spot_balance_does_not_count(self, copy_service, futures_owner_order, gold_tier, fund):
        fund("u1", "spot", "10")

        with pytest.raises(InsufficientTradeBalanceError):
            copy_service.follow_futures(user(vip_tier_id=gold_tier.id), futures_owner_order.copy_code)


# ============================================================
# QUERIES
# ============================================================

class TestQueries:
    """Available orders and order history."""

    def test_available_excludes_expired(self, copy_service, spot_owner_order, clock):
        copy_service.place_spot_owner_order(
            "admin", "ETH_USDT", "buy", "limit", "1", price="1",
            expiration=clock.now() + timedelta(minutes=5),
        )
        clock.advance(minutes=10)

        available = copy_service.available_orders("spot")

        assert [o.id for o in available] == [spot_owner_order.id]

    def test_available_by_market(self, copy_service, spot_owner_order, futures_owner_order):
        assert {o.id for o in copy_service.available_orders()} == {
            spot_owner_order.id, futures_owner_order.id,
        }
        assert [o.id for o in copy_service.available_orders("futures")] == [futures_owner_order.id]

    def test_available_rejects_unknown_market(self, copy_service):
        with pytest.raises(ValidationError):
            copy_service.available_orders("options")

    def test_user_orders(self, copy_service, spot_owner_order, fund):
        fund("u1", "spot", "100")
        followed = copy_service.follow_spot(user(), spot_owner_order.copy_code)

        orders = copy_service.user_orders("u1", "spot")

        assert [o.id for o in orders] == [followed.id]
        assert len(orders[0].fills) == 1
        assert copy_service.user_orders("u1", "futures") == []

    def test_order_details_lists_followers(self, copy_service, spot_owner_order, fund):
        fund("u1", "spot", "100")
        fund("u2", "spot", "100")
        first = copy_service.follow_spot(user("u1"), spot_owner_order.copy_code)
        second = copy_service.follow_spot(user("u2"), spot_owner_order.copy_code)

        order, followers = copy_service.order_details(spot_owner_order.id)

        assert order.copy_code == spot_owner_order.copy_code
        assert {f.id for f in followers} == {first.id, second.id}
        follower, own_followers = copy_service.order_details(first.id)
        assert len(follower.fills) == 1
        assert own_followers == []

    def test_order_details_unknown(self, copy_service):
        with pytest.raises(NotFoundError):
            copy_service.order_details("missing")

    def test_all_orders_filters(self, copy_service, spot_owner_order, futures_owner_order, fund):
        fund("u1", "spot", "100")
        followed = copy_service.follow_spot(user(), spot_owner_order.copy_code)

        assert len(copy_service.all_orders()) == 3
        assert [o.id for o in copy_service.all_orders("spot", owner=False)] == [followed.id]
        assert {o.id for o in copy_service.all_orders(owner=True)} == {
            spot_owner_order.id, futures_owner_order.id,
        }
        assert [o.id for o in copy_service.all_orders(status="pending_profit")] == [followed.id]

    def test_all_orders_rejects_unknown_status(self, copy_service):
        with pytest.raises(ValidationError):
            copy_service.all_orders(status="shipped")
