"""
Tests for the copy-order state machine.
"""

import pytest

from core.exceptions import InvalidStateTransitionError
from database.models import CopyOrder
from copy_trading.state_machine import OrderStateMachine, TransitionGuard
from copy_trading.types import OrderStatus, TERMINAL_STATES


def make_order(status=OrderStatus.PENDING):
    return CopyOrder(id="order-1", status=status.value)


class TestTransitionGuard:
    """Static transition table."""

    @pytest.mark.parametrize("target", [
        OrderStatus.PENDING_PROFIT,
        OrderStatus.PARTIAL,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED,
    ])
    def test_pending_can_move_on(self, target):
        allowed, _ = TransitionGuard.can_transition(OrderStatus.PENDING, target)
        assert allowed

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_are_final(self, terminal):
        allowed, reason = TransitionGuard.can_transition(terminal, OrderStatus.PENDING)
        assert not allowed
        assert "terminal" in reason

    def test_pending_profit_cannot_go_back(self):
        allowed, _ = TransitionGuard.can_transition(OrderStatus.PENDING_PROFIT, OrderStatus.PENDING)
        assert not allowed

    def test_partial_cancel_only_from_partial(self):
        assert TransitionGuard.can_transition(OrderStatus.PARTIAL, OrderStatus.PARTIAL_CANCELLED)[0]
        assert not TransitionGuard.can_transition(OrderStatus.PENDING, OrderStatus.PARTIAL_CANCELLED)[0]


class TestOrderStateMachine:
    """State machine bound to an order."""

    def test_follow_then_settle(self, clock):
        order = make_order()
        machine = OrderStateMachine(order, clock)

        machine.mark_pending_profit()
        clock.advance(hours=1)
        event = machine.mark_completed(profit="10")

        assert order.status == OrderStatus.COMPLETED.value
        assert order.settled_at == clock.now()
        assert event.from_state == OrderStatus.PENDING_PROFIT
        assert event.details == {"profit": "10"}

    def test_invalid_transition_raises(self, clock):
        order = make_order(OrderStatus.COMPLETED)
        machine = OrderStateMachine(order, clock)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            machine.mark_failed("late failure")

        assert exc_info.value.context["from_state"] == "completed"
        assert order.status == OrderStatus.COMPLETED.value

    def test_same_state_is_noop(self, clock):
        order = make_order(OrderStatus.PENDING_PROFIT)
        machine = OrderStateMachine(order, clock)

        event = machine.mark_pending_profit()

        assert event.reason == "No change"
        assert order.updated_at is None

    def test_non_settling_transition_leaves_settled_at(self, clock):
        order = make_order(OrderStatus.PENDING_PROFIT)
        machine = OrderStateMachine(order, clock)

        machine.mark_failed("settlement gave up")

        assert order.status == OrderStatus.FAILED.value
        assert order.updated_at == clock.now()
        assert order.settled_at is None
