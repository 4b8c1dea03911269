"""
Copy Trading - Order State Machine.

============================================================
PURPOSE
============================================================
Manages copy-order lifecycle with strict state transitions.

STATE MACHINE:

        PENDING ──────────► PENDING_PROFIT ──► COMPLETED
           │                     │
           ├──► PARTIAL ──► PARTIAL_CANCELLED
           │       │
           │       └──────► COMPLETED
           │
           └──► COMPLETED

    Any non-terminal state can transition to:
    - CANCELLED (PENDING / PENDING_PROFIT only)
    - FAILED (settlement gave up)

INVARIANTS:
- Terminal states are final
- Each transition has a guard
- All transitions are logged

============================================================
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Set, Tuple
from dataclasses import dataclass, field

from core.clock import ClockFactory, ClockProtocol, now_utc
from core.exceptions import InvalidStateTransitionError
from database.models import CopyOrder
from copy_trading.types import OrderStatus


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PENDING_PROFIT,
        OrderStatus.PARTIAL,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED,
    },
    OrderStatus.PARTIAL: {
        OrderStatus.COMPLETED,
        OrderStatus.PARTIAL_CANCELLED,
        OrderStatus.FAILED,
    },
    OrderStatus.PENDING_PROFIT: {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED,
    },
    # Terminal states - no transitions out
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.PARTIAL_CANCELLED: set(),
    OrderStatus.FAILED: set(),
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """Event representing a state transition."""

    order_id: str
    from_state: OrderStatus
    to_state: OrderStatus
    timestamp: datetime = field(default_factory=now_utc)
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """Ensures transitions are valid and provides reason for denial."""

    @staticmethod
    def can_transition(
        from_state: OrderStatus,
        to_state: OrderStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Returns:
            Tuple of (allowed, reason)
        """
        if from_state == to_state:
            return True, "Same state"

        if to_state in VALID_TRANSITIONS.get(from_state, set()):
            return True, "Valid transition"

        if from_state.is_terminal():
            return False, f"Cannot transition from terminal state {from_state.value}"

        return False, f"Invalid transition: {from_state.value} -> {to_state.value}"


# ============================================================
# ORDER STATE MACHINE
# ============================================================

class OrderStateMachine:
    """
    State machine wrapped around a persisted copy order.

    Mutates order.status in place; the caller's transaction
    persists it.
    """

    def __init__(self, order: CopyOrder, clock: Optional[ClockProtocol] = None):
        self._order = order
        self._clock = clock or ClockFactory.get_clock()

    @property
    def current_state(self) -> OrderStatus:
        return OrderStatus(self._order.status)

    def can_transition_to(self, target_state: OrderStatus) -> Tuple[bool, str]:
        return TransitionGuard.can_transition(self.current_state, target_state)

    def transition_to(
        self,
        target_state: OrderStatus,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> StateTransitionEvent:
        """
        Transition to a new state.

        Raises:
            InvalidStateTransitionError: If transition is not allowed
        """
        allowed, validation_reason = self.can_transition_to(target_state)

        if not allowed:
            raise InvalidStateTransitionError(
                self.current_state.value,
                target_state.value,
                validation_reason,
                context={"order_id": self._order.id},
            )

        if self.current_state == target_state:
            return StateTransitionEvent(
                order_id=self._order.id,
                from_state=self.current_state,
                to_state=target_state,
                reason="No change",
            )

        event = StateTransitionEvent(
            order_id=self._order.id,
            from_state=self.current_state,
            to_state=target_state,
            timestamp=self._clock.now(),
            reason=reason,
            details=details or {},
        )

        self._order.status = target_state.value
        self._order.updated_at = event.timestamp
        if target_state == OrderStatus.COMPLETED:
            self._order.settled_at = event.timestamp

        logger.info(
            f"Order {self._order.id}: "
            f"{event.from_state.value} -> {event.to_state.value} "
            f"({reason})"
        )

        return event

    # --------------------------------------------------------
    # CONVENIENCE METHODS
    # --------------------------------------------------------

    def mark_pending_profit(self, reason: str = "Followed") -> StateTransitionEvent:
        return self.transition_to(OrderStatus.PENDING_PROFIT, reason)

    def mark_completed(self, reason: str = "Settled", **details: Any) -> StateTransitionEvent:
        return self.transition_to(OrderStatus.COMPLETED, reason, details)

    def mark_failed(self, reason: str) -> StateTransitionEvent:
        return self.transition_to(OrderStatus.FAILED, reason)
