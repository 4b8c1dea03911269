"""
Tests for Profit Settlement.

============================================================
PURPOSE
============================================================
1. Profit formula (spot and futures, both directions)
2. Crediting at expiration
3. Idempotence across repeated sweeps
4. Retry bookkeeping and failure after max attempts

============================================================
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import NotFoundError, ValidationError
from database.engine import transaction_scope
from database.models import CopyOrder, ProfitSettlement
from notifications.dispatcher import NotificationEvent
from copy_trading.settlement import SettlementOutcome, compute_profit
from copy_trading.types import OrderStatus
from tests.copy_trading.conftest import EXPIRATION, user


@pytest.fixture
def followed_spot(copy_service, spot_owner_order, fund):
    fund("u1", "spot", "100")
    return copy_service.follow_spot(user(), spot_owner_order.copy_code)


@pytest.fixture
def followed_futures(copy_service, futures_owner_order, gold_tier, fund):
    fund("u1", "futures", "10")
    return copy_service.follow_futures(user(vip_tier_id=gold_tier.id), futures_owner_order.copy_code)


def reload(session_factory, order_id):
    with transaction_scope(session_factory) as session:
        return session.get(CopyOrder, order_id)


def update_order(session_factory, order_id, **values):
    with transaction_scope(session_factory) as session:
        order = session.get(CopyOrder, order_id)
        for key, value in values.items():
            setattr(order, key, value)


# ============================================================
# PROFIT FORMULA
# ============================================================

class TestComputeProfit:
    """compute_profit on detached orders."""

    def test_spot_buy(self):
        order = CopyOrder(market="spot", side="buy", price=Decimal("100"),
                          average_execution_price=Decimal("101"), executed_quantity=Decimal("2"))
        assert compute_profit(order) == Decimal("2")

    def test_spot_sell(self):
        order = CopyOrder(market="spot", side="sell", price=Decimal("100"),
                          average_execution_price=Decimal("95"), executed_quantity=Decimal("1"))
        assert compute_profit(order) == Decimal("5")

    def test_futures_short(self):
        order = CopyOrder(market="futures", side="sell", price_way=2, trigger_price=Decimal("200"),
                          average_execution_price=Decimal("194"), executed_quantity=Decimal("3"))
        assert compute_profit(order) == Decimal("18")

    def test_loss_is_negative(self):
        order = CopyOrder(market="spot", side="buy", price=Decimal("100"),
                          average_execution_price=Decimal("90"), executed_quantity=Decimal("1"))
        assert compute_profit(order) == Decimal("-10")

    def test_missing_price(self):
        order = CopyOrder(id="x", market="spot", side="buy", price=None,
                          average_execution_price=Decimal("90"), executed_quantity=Decimal("1"))
        with pytest.raises(ValidationError):
            compute_profit(order)


# ============================================================
# SWEEP
# ============================================================

class TestSettlementSweep:
    """Expired pending-profit orders are credited once."""

    def test_not_due_before_expiration(self, settlement_service, followed_spot, balance_of):
        result = settlement_service.run_sweep()

        assert result.due == 0
        assert settlement_service.settle_order(followed_spot.id) == SettlementOutcome.NOT_DUE
        assert balance_of("u1", "spot").balance == Decimal("100")

    def test_spot_profit_credited(self, settlement_service, followed_spot, balance_of,
                                  session_factory, clock, notifier):
        clock.set_time(EXPIRATION)

        result = settlement_service.run_sweep()

        assert result.due == 1
        assert result.settled == 1
        assert result.settled_order_ids == [followed_spot.id]
        assert balance_of("u1", "spot").balance == Decimal("102")

        order = reload(session_factory, followed_spot.id)
        assert order.status == OrderStatus.COMPLETED.value
        assert order.settled_at == EXPIRATION
        assert notifier.notify.call_args[0][0] == NotificationEvent.PROFIT_SETTLED

    def test_futures_profit_credited(self, settlement_service, followed_futures, balance_of, clock):
        clock.set_time(EXPIRATION + timedelta(minutes=1))

        settlement_service.run_sweep()

        # (206 - 200) x 3
        assert balance_of("u1", "futures").balance == Decimal("28")

    def test_second_sweep_credits_nothing(self, settlement_service, followed_spot, balance_of,
                                          session_factory, clock):
        clock.set_time(EXPIRATION)
        settlement_service.run_sweep()

        again = settlement_service.run_sweep()

        assert again.due == 0
        assert settlement_service.settle_order(followed_spot.id) == SettlementOutcome.ALREADY_SETTLED
        assert balance_of("u1", "spot").balance == Decimal("102")
        with transaction_scope(session_factory) as session:
            assert session.query(ProfitSettlement).count() == 1

    def test_loss_completes_without_credit(self, settlement_service, followed_spot, balance_of,
                                           session_factory, clock):
        update_order(session_factory, followed_spot.id, average_execution_price=Decimal("90"))
        clock.set_time(EXPIRATION)

        result = settlement_service.run_sweep()

        assert result.settled == 1
        assert balance_of("u1", "spot").balance == Decimal("100")
        assert reload(session_factory, followed_spot.id).status == OrderStatus.COMPLETED.value
        with transaction_scope(session_factory) as session:
            entry = session.query(ProfitSettlement).one()
            assert entry.profit == Decimal("-20")
            assert entry.credited_amount == Decimal("0")

    def test_owner_orders_never_settle(self, settlement_service, spot_owner_order, clock):
        clock.set_time(EXPIRATION + timedelta(days=1))

        assert settlement_service.run_sweep().due == 0

    def test_unknown_order(self, settlement_service):
        with pytest.raises(NotFoundError):
            settlement_service.settle_order("missing")


# ============================================================
# FAILURES
# ============================================================

class TestSettlementFailures:
    """A broken order is retried, then marked failed."""

    def test_failure_is_retried_then_marked_failed(self, settlement_service, followed_spot,
                                                   balance_of, session_factory, clock, notifier):
        update_order(session_factory, followed_spot.id, price=None)
        clock.set_time(EXPIRATION)

        first = settlement_service.run_sweep()

        assert first.errors == 1
        assert first.marked_failed == 0
        order = reload(session_factory, followed_spot.id)
        assert order.status == OrderStatus.PENDING_PROFIT.value
        assert order.settlement_attempts == 1
        assert order.last_error

        settlement_service.run_sweep()
        third = settlement_service.run_sweep()

        assert third.marked_failed == 1
        assert reload(session_factory, followed_spot.id).status == OrderStatus.FAILED.value
        assert settlement_service.run_sweep().due == 0
        assert balance_of("u1", "spot").balance == Decimal("100")
        assert notifier.notify.call_args[0][0] == NotificationEvent.SETTLEMENT_FAILED

    def test_failing_order_does_not_block_others(self, settlement_service, copy_service,
                                                 spot_owner_order, fund, balance_of,
                                                 session_factory, clock):
        fund("u1", "spot", "100")
        fund("u2", "spot", "100")
        broken = copy_service.follow_spot(user("u1"), spot_owner_order.copy_code)
        copy_service.follow_spot(user("u2"), spot_owner_order.copy_code)
        update_order(session_factory, broken.id, price=None)
        clock.set_time(EXPIRATION)

        result = settlement_service.run_sweep()

        assert result.due == 2
        assert result.settled == 1
        assert result.errors == 1
        assert balance_of("u2", "spot").balance == Decimal("102")
