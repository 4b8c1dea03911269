"""
Profit Settlement.

============================================================
PURPOSE
============================================================
Resolves follower orders whose status is pending_profit and
whose expiration has passed: credits the simulated profit to
the follower's trade account and completes the order.

Profit:
    spot     (exit - entry) x qty for buy, reversed for sell
    futures  (exit - trigger) x size for long, reversed for short

A non-positive profit credits nothing; the order still completes.

============================================================
IDEMPOTENCE / RECOVERY
============================================================
- Every order settles in its own transaction: credit, ledger
  row and status change commit together or not at all
- profit_settlements.order_id is unique, and an order that is
  no longer pending_profit is skipped, so re-running a sweep
  (including after a crash) never credits twice
- A failing order is left pending_profit with its attempt count
  bumped; the next sweep retries it. After max_attempts it is
  marked failed.

============================================================
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.constants import PRICE_WAY_LONG, ZERO, AccountType
from core.exceptions import NotFoundError, ValidationError
from database.engine import transaction_scope
from database.models import CopyOrder, ProfitSettlement
from notifications.dispatcher import NotificationDispatcher, NotificationEvent
from accounts.balance_store import BalanceStore, quantize
from copy_trading.state_machine import OrderStateMachine
from copy_trading.types import Market, OrderSide, OrderStatus


logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"
    NOT_DUE = "not_due"


@dataclass
class SweepResult:
    """Summary of one settlement sweep."""

    due: int = 0
    settled: int = 0
    skipped: int = 0
    errors: int = 0
    marked_failed: int = 0
    settled_order_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "due": self.due,
            "settled": self.settled,
            "skipped": self.skipped,
            "errors": self.errors,
            "marked_failed": self.marked_failed,
        }


def compute_profit(order: CopyOrder) -> Decimal:
    """Simulated profit of a follower order."""
    exit_price = order.average_execution_price
    quantity = order.executed_quantity or order.quantity

    if order.market == Market.FUTURES.value:
        entry_price = order.trigger_price
        long_position = order.price_way == PRICE_WAY_LONG
    else:
        entry_price = order.price
        long_position = order.side == OrderSide.BUY.value

    if entry_price is None or exit_price is None or quantity is None:
        raise ValidationError(
            "Order has no execution price to settle",
            context={"order_id": order.id},
        )

    if long_position:
        return quantize((exit_price - entry_price) * quantity)
    return quantize((entry_price - exit_price) * quantity)


class ProfitSettlementService:
    """
    Settles expired pending-profit follower orders.

    Invoked by the periodic scheduler and the admin endpoint.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
        max_attempts: int = 5,
        batch_size: int = 100,
        notifier: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._max_attempts = max_attempts
        self._batch_size = batch_size
        self._notifier = notifier

    # =========================================================
    # SWEEP
    # =========================================================

    def due_order_ids(self) -> List[str]:
        """Expired pending-profit follower orders, oldest deadline first."""
        stmt = (
            select(CopyOrder.id)
            .where(
                CopyOrder.owner.is_(False),
                CopyOrder.status == OrderStatus.PENDING_PROFIT.value,
                CopyOrder.expiration.is_not(None),
                CopyOrder.expiration <= self._clock.now(),
            )
            .order_by(CopyOrder.expiration, CopyOrder.id)
            .limit(self._batch_size)
        )
        with transaction_scope(self._session_factory) as session:
            return list(session.execute(stmt).scalars())

    def run_sweep(self) -> SweepResult:
        """
        Settle every due order.

        A failing order never aborts the sweep.
        """
        result = SweepResult()
        order_ids = self.due_order_ids()
        result.due = len(order_ids)

        for order_id in order_ids:
            try:
                outcome = self.settle_order(order_id)
            except Exception as e:
                result.errors += 1
                logger.error(f"Settlement of order {order_id} failed: {e}", exc_info=True)
                if self._record_failure(order_id, e):
                    result.marked_failed += 1
                continue

            if outcome == SettlementOutcome.SETTLED:
                result.settled += 1
                result.settled_order_ids.append(order_id)
            else:
                result.skipped += 1

        if result.due:
            logger.info(
                f"Settlement sweep: due={result.due} settled={result.settled} "
                f"skipped={result.skipped} errors={result.errors} failed={result.marked_failed}"
            )
        return result

    # =========================================================
    # SINGLE ORDER
    # =========================================================

    def settle_order(self, order_id: str) -> SettlementOutcome:
        """Settle one order in its own transaction."""
        with transaction_scope(self._session_factory) as session:
            order = session.execute(
                select(CopyOrder).where(CopyOrder.id == order_id).with_for_update()
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError("Order", order_id)

            if self._already_settled(session, order_id) or order.status != OrderStatus.PENDING_PROFIT.value:
                logger.debug(f"Order {order_id} already settled ({order.status})")
                return SettlementOutcome.ALREADY_SETTLED

            if order.expiration is None or order.expiration > self._clock.now():
                return SettlementOutcome.NOT_DUE

            settlement = self._apply(session, order)

        logger.info(
            f"Settled order {order_id} for {settlement.user_id}: "
            f"profit={settlement.profit} credited={settlement.credited_amount} "
            f"{settlement.account_type}/{settlement.asset_id}"
        )
        if self._notifier is not None:
            self._notifier.notify(
                NotificationEvent.PROFIT_SETTLED,
                settlement.user_id,
                "Copy-trading profit settled",
                order_id=order_id,
                profit=str(settlement.profit),
                credited=str(settlement.credited_amount),
                account=settlement.account_type,
            )
        return SettlementOutcome.SETTLED

    def _apply(self, session: Session, order: CopyOrder) -> ProfitSettlement:
        profit = compute_profit(order)
        credited = profit if profit > ZERO else ZERO
        account_type = AccountType(order.market)

        if credited > ZERO:
            if not order.quote_asset_id:
                raise ValidationError(
                    "Order has no quote asset to credit",
                    context={"order_id": order.id},
                )
            BalanceStore(session).credit(
                order.user_id, account_type, order.quote_asset_id, credited,
                asset_name=order.quote_asset_name,
            )

        settlement = ProfitSettlement(
            order_id=order.id,
            user_id=order.user_id,
            account_type=account_type.value,
            asset_id=order.quote_asset_id or "",
            entry_price=order.trigger_price if account_type == AccountType.FUTURES else order.price,
            exit_price=order.average_execution_price,
            quantity=order.executed_quantity or order.quantity,
            profit=profit,
            credited_amount=credited,
            settled_at=self._clock.now(),
        )
        session.add(settlement)

        order.last_error = None
        OrderStateMachine(order, self._clock).mark_completed(
            "Profit settled", profit=str(profit),
        )
        session.flush()
        return settlement

    @staticmethod
    def _already_settled(session: Session, order_id: str) -> bool:
        return session.execute(
            select(ProfitSettlement.id).where(ProfitSettlement.order_id == order_id)
        ).first() is not None

    # =========================================================
    # FAILURE BOOKKEEPING
    # =========================================================

    def _record_failure(self, order_id: str, error: Exception) -> bool:
        """
        Count a failed attempt. Returns True when the order was
        marked failed.
        """
        marked_failed = False
        try:
            with transaction_scope(self._session_factory) as session:
                order = session.get(CopyOrder, order_id, with_for_update=True)
                if order is None or order.status != OrderStatus.PENDING_PROFIT.value:
                    return False
                order.settlement_attempts = (order.settlement_attempts or 0) + 1
                order.last_error = str(error)[:1000]
                if order.settlement_attempts >= self._max_attempts:
                    OrderStateMachine(order, self._clock).mark_failed(
                        f"Settlement failed {order.settlement_attempts} times"
                    )
                    marked_failed = True
                user_id = order.user_id
                attempts = order.settlement_attempts
        except Exception as e:
            logger.error(f"Could not record settlement failure for {order_id}: {e}")
            return False

        if marked_failed:
            logger.error(f"Order {order_id} marked failed after {attempts} settlement attempts")
            if self._notifier is not None:
                self._notifier.notify(
                    NotificationEvent.SETTLEMENT_FAILED,
                    user_id,
                    "Copy-trading settlement failed",
                    order_id=order_id,
                    attempts=attempts,
                    last_error=str(error)[:200],
                )
        else:
            logger.warning(f"Order {order_id} settlement attempt {attempts} failed, will retry")
        return marked_failed
