"""
Copy-Order Engine.

============================================================
PURPOSE
============================================================
- Owner order placement (admin): creates the order others copy
- Follow: fabricates a follower order mirroring an owner order,
  with a deterministic simulated final price and a deferred
  settlement at the owner's expiration
- Read-only queries: available owner orders, user order history,
  admin order listing and order details with followers

No balance is mutated when following. Profit is credited by
ProfitSettlementService once the order expires.

============================================================
FOLLOW VALIDATION ORDER
============================================================
1. Owner order exists (owner, pending, copy code, market)
2. Owner order not expired
3. User has no order under the same copy code
4. User's quote-asset balance >= owner limit price
5. Futures only: user's VIP tier level > 0

============================================================
"""

import logging
import secrets
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from core.clock import ClockFactory, ClockProtocol, to_naive_utc
from core.constants import (
    COPY_CODE_ALPHABET,
    COPY_CODE_LENGTH,
    COPY_CODE_MAX_DRAWS,
    DEFAULT_FUTURES_LEVERAGE,
    DEFAULT_FUTURES_OPEN_TYPE,
    DEFAULT_FUTURES_PRICE_TYPE,
    DEFAULT_OWNER_PERCENTAGE,
    MAX_OWNER_PERCENTAGE,
    MIN_OWNER_PERCENTAGE,
    PRICE_WAY_LONG,
    PRICE_WAY_SHORT,
    TRACKED_ASSET_ID,
    TRACKED_ASSET_NAME,
    ZERO,
    AccountType,
)
from core.context import UserContext
from core.exceptions import (
    AlreadyFollowingError,
    ExpiredError,
    InsufficientTradeBalanceError,
    LedgerException,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from database.engine import transaction_scope
from database.models import AccountBalance, CopyOrder, OrderFill, generate_uuid
from notifications.dispatcher import NotificationDispatcher, NotificationEvent
from accounts.balance_store import BalanceStore, positive_amount, quantize, to_decimal
from copy_trading.state_machine import OrderStateMachine
from copy_trading.types import Market, OrderSide, OrderStatus, quote_asset_of, signed_price
from copy_trading.vip import require_futures_eligible


logger = logging.getLogger(__name__)


def _parse_market(value) -> Market:
    try:
        return Market(value)
    except ValueError:
        raise ValidationError("market must be spot or futures", field="market")


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown order status {value}", field="status")


def _parse_side(value) -> OrderSide:
    try:
        return OrderSide(str(value).lower())
    except ValueError:
        raise ValidationError("side must be buy or sell", field="side")


def _require_text(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


class CopyTradingService:
    """
    Copy-order engine.

    Each public mutation runs in its own transaction_scope.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._notifier = notifier

    # =========================================================
    # OWNER ORDER PLACEMENT
    # =========================================================

    def place_spot_owner_order(
        self,
        user_id: str,
        symbol: str,
        side: str,
        order_type: str,
        quantity,
        price=None,
        limit_price=None,
        expiration=None,
        percentage=DEFAULT_OWNER_PERCENTAGE,
    ) -> CopyOrder:
        """Create an owner spot order available for copying."""
        symbol = _require_text(symbol, "symbol")
        side = _parse_side(_require_text(side, "side"))
        order_type = _require_text(order_type, "type")
        quantity = positive_amount(quantity, "quantity")
        price = self._non_negative(price, "price")
        limit_price = self._optional_non_negative(limit_price, "limit_price")
        percentage = self._owner_percentage(percentage)

        with transaction_scope(self._session_factory) as session:
            order = CopyOrder(
                id=generate_uuid(),
                market=Market.SPOT.value,
                user_id=user_id,
                owner=True,
                copy_code=self._new_copy_code(session),
                symbol=symbol,
                side=side.value,
                order_type=order_type,
                quantity=quantity,
                price=price,
                limit_price=limit_price,
                percentage=percentage,
                expiration=to_naive_utc(expiration) if expiration else None,
                status=OrderStatus.PENDING.value,
                executed_quantity=ZERO,
                created_at=self._clock.now(),
            )
            session.add(order)
            session.flush()

        logger.info(
            f"Owner spot order {order.id} placed: {order.symbol} {order.side} "
            f"qty={order.quantity} price={order.price} code={order.copy_code}"
        )
        return order

    def place_futures_owner_order(
        self,
        user_id: str,
        symbol: str,
        side: str,
        order_type: str,
        size,
        trigger_price,
        executive_price=None,
        leverage: str = DEFAULT_FUTURES_LEVERAGE,
        open_type: str = DEFAULT_FUTURES_OPEN_TYPE,
        price_way: Optional[int] = None,
        price_type: int = DEFAULT_FUTURES_PRICE_TYPE,
        limit_price=None,
        expiration=None,
        percentage=DEFAULT_OWNER_PERCENTAGE,
    ) -> CopyOrder:
        """Create an owner futures order available for copying."""
        symbol = _require_text(symbol, "symbol")
        side = _parse_side(_require_text(side, "side"))
        order_type = _require_text(order_type, "type")
        size = positive_amount(size, "size")
        trigger_price = positive_amount(trigger_price, "trigger_price")
        executive_price = (
            positive_amount(executive_price, "executive_price")
            if executive_price is not None else trigger_price
        )
        if price_way is None:
            price_way = side.price_way
        elif price_way not in (PRICE_WAY_LONG, PRICE_WAY_SHORT):
            raise ValidationError("price_way must be 1 (long) or 2 (short)", field="price_way")
        limit_price = self._optional_non_negative(limit_price, "limit_price")
        percentage = self._owner_percentage(percentage)

        with transaction_scope(self._session_factory) as session:
            order = CopyOrder(
                id=generate_uuid(),
                market=Market.FUTURES.value,
                user_id=user_id,
                owner=True,
                copy_code=self._new_copy_code(session),
                symbol=symbol,
                side=side.value,
                order_type=order_type,
                quantity=size,
                leverage=str(leverage or DEFAULT_FUTURES_LEVERAGE),
                open_type=open_type or DEFAULT_FUTURES_OPEN_TYPE,
                trigger_price=trigger_price,
                executive_price=executive_price,
                price_way=price_way,
                price_type=price_type or DEFAULT_FUTURES_PRICE_TYPE,
                limit_price=limit_price,
                percentage=percentage,
                expiration=to_naive_utc(expiration) if expiration else None,
                status=OrderStatus.PENDING.value,
                executed_quantity=ZERO,
                created_at=self._clock.now(),
            )
            session.add(order)
            session.flush()

        logger.info(
            f"Owner futures order {order.id} placed: {order.symbol} {order.side} "
            f"size={order.quantity} trigger={order.trigger_price} code={order.copy_code}"
        )
        return order

    # =========================================================
    # FOLLOW
    # =========================================================

    def follow_spot(self, user: UserContext, copy_code: str) -> CopyOrder:
        return self._follow(Market.SPOT, user, copy_code)

    def follow_futures(self, user: UserContext, copy_code: str) -> CopyOrder:
        return self._follow(Market.FUTURES, user, copy_code)

    def _follow(self, market: Market, user: UserContext, copy_code: str) -> CopyOrder:
        copy_code = _require_text(copy_code, "copyCode")

        try:
            with transaction_scope(self._session_factory) as session:
                follower = self._create_follower(session, market, user, copy_code)
        except LedgerException as e:
            logger.warning(
                f"Follow {market.value} {copy_code} rejected for {user.user_id}: {e.message}"
            )
            raise

        logger.info(
            f"User {user.user_id} followed {market.value} {copy_code}: "
            f"order={follower.id} final_price={follower.average_execution_price} "
            f"percentage={follower.percentage} expiration={follower.expiration}"
        )
        if self._notifier is not None:
            self._notifier.notify(
                NotificationEvent.ORDER_FOLLOWED,
                user.user_id,
                f"{market.value.title()} order followed",
                order_id=follower.id,
                copy_code=copy_code,
                symbol=follower.symbol,
                expected_final_price=str(follower.average_execution_price),
                expiration=follower.expiration.isoformat() if follower.expiration else "none",
            )
        return follower

    def _create_follower(
        self,
        session: Session,
        market: Market,
        user: UserContext,
        copy_code: str,
    ) -> CopyOrder:
        # 1. owner order
        source = session.execute(
            select(CopyOrder).where(
                CopyOrder.copy_code == copy_code,
                CopyOrder.owner.is_(True),
                CopyOrder.status == OrderStatus.PENDING.value,
                CopyOrder.market == market.value,
            )
        ).scalar_one_or_none()
        if source is None:
            raise NotFoundError("Order", copy_code)

        # 2. expiration
        if self._clock.is_expired(source.expiration):
            raise ExpiredError(copy_code, source.expiration)

        # 3. duplicate follow
        existing = session.execute(
            select(CopyOrder.id).where(
                CopyOrder.user_id == user.user_id,
                CopyOrder.copy_code == copy_code,
            )
        ).first()
        if existing is not None:
            raise AlreadyFollowingError(copy_code)

        # 4. balance
        account_type = AccountType(market.value)
        balance = self._quote_balance(session, user.user_id, account_type, source.symbol)
        required = source.limit_price or ZERO
        if balance is None or balance.balance < required:
            raise InsufficientTradeBalanceError(
                f"Insufficient {market.value} balance to follow this order",
                account_type=account_type.value,
                required=required,
                available=balance.balance if balance is not None else ZERO,
            )

        # 5. pricing (futures gated by VIP tier)
        if market == Market.SPOT:
            base_price = source.price or ZERO
            percentage = source.percentage
            upward = source.side == OrderSide.BUY.value
        else:
            tier = require_futures_eligible(session, user.vip_tier_id)
            base_price = source.trigger_price
            percentage = tier.percentage
            upward = source.price_way == PRICE_WAY_LONG

        final_price = quantize(signed_price(base_price, percentage, upward))
        now = self._clock.now()

        follower = CopyOrder(
            id=generate_uuid(),
            market=market.value,
            user_id=user.user_id,
            owner=False,
            copy_code=copy_code,
            source_order_id=source.id,
            symbol=source.symbol,
            side=source.side,
            order_type=source.order_type,
            quantity=source.quantity,
            price=source.price,
            limit_price=source.limit_price,
            leverage=source.leverage,
            open_type=source.open_type,
            trigger_price=source.trigger_price,
            executive_price=source.executive_price,
            price_way=source.price_way,
            price_type=source.price_type,
            percentage=percentage,
            expiration=source.expiration,
            status=OrderStatus.PENDING.value,
            average_execution_price=final_price,
            executed_quantity=source.quantity,
            quote_asset_id=balance.asset_id,
            quote_asset_name=balance.asset_name,
            created_at=now,
            updated_at=now,
        )
        follower.fills.append(
            OrderFill(price=final_price, quantity=source.quantity, fee=ZERO, executed_at=now)
        )
        OrderStateMachine(follower, self._clock).mark_pending_profit(f"Followed {copy_code}")

        session.add(follower)
        try:
            session.flush()
        except IntegrityError:
            raise AlreadyFollowingError(copy_code)
        return follower

    def _quote_balance(
        self,
        session: Session,
        user_id: str,
        account_type: AccountType,
        symbol: str,
    ) -> Optional[AccountBalance]:
        store = BalanceStore(session)
        quote = quote_asset_of(symbol)
        if quote == TRACKED_ASSET_NAME:
            balance = store.get_balance(user_id, account_type, TRACKED_ASSET_ID)
            if balance is None:
                balance = store.find_by_asset_name(user_id, account_type, TRACKED_ASSET_NAME)
            return balance
        return store.find_by_asset_name(user_id, account_type, quote)

    # =========================================================
    # QUERIES
    # =========================================================

    def available_orders(self, market=None) -> List[CopyOrder]:
        """Owner orders still pending and unexpired, newest first."""
        now = self._clock.now()
        stmt = select(CopyOrder).where(
            CopyOrder.owner.is_(True),
            CopyOrder.status == OrderStatus.PENDING.value,
            or_(CopyOrder.expiration.is_(None), CopyOrder.expiration >= now),
        )
        if market is not None:
            stmt = stmt.where(CopyOrder.market == _parse_market(market).value)
        stmt = stmt.order_by(CopyOrder.created_at.desc())

        with transaction_scope(self._session_factory) as session:
            return list(session.execute(stmt).scalars())

    def user_orders(self, user_id: str, market) -> List[CopyOrder]:
        """A user's own orders of one market, newest first."""
        stmt = (
            select(CopyOrder)
            .options(selectinload(CopyOrder.fills))
            .where(
                CopyOrder.user_id == user_id,
                CopyOrder.market == _parse_market(market).value,
            )
            .order_by(CopyOrder.created_at.desc())
        )
        with transaction_scope(self._session_factory) as session:
            return list(session.execute(stmt).scalars())

    # =========================================================
    # ADMIN QUERIES
    # =========================================================

    def all_orders(self, market=None, owner: Optional[bool] = None, status=None) -> List[CopyOrder]:
        """Every user's orders, newest first."""
        stmt = select(CopyOrder).options(selectinload(CopyOrder.fills))
        if market is not None:
            stmt = stmt.where(CopyOrder.market == _parse_market(market).value)
        if owner is not None:
            stmt = stmt.where(CopyOrder.owner.is_(owner))
        if status is not None:
            stmt = stmt.where(CopyOrder.status == _parse_status(status).value)
        stmt = stmt.order_by(CopyOrder.created_at.desc(), CopyOrder.id.desc())

        with transaction_scope(self._session_factory) as session:
            return list(session.execute(stmt).scalars())

    def order_details(self, order_id: str) -> Tuple[CopyOrder, List[CopyOrder]]:
        """An order with its fills and the follower orders copied from it."""
        with transaction_scope(self._session_factory) as session:
            order = session.execute(
                select(CopyOrder).options(selectinload(CopyOrder.fills)).where(CopyOrder.id == order_id)
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError("Order", order_id)
            followers = list(session.execute(
                select(CopyOrder)
                .where(CopyOrder.source_order_id == order.id)
                .order_by(CopyOrder.created_at, CopyOrder.id)
            ).scalars())
        return order, followers

    # =========================================================
    # PROTECTED HELPERS
    # =========================================================

    def _new_copy_code(self, session: Session) -> str:
        for _ in range(COPY_CODE_MAX_DRAWS):
            code = "".join(secrets.choice(COPY_CODE_ALPHABET) for _ in range(COPY_CODE_LENGTH))
            taken = session.execute(
                select(CopyOrder.id).where(CopyOrder.copy_code == code)
            ).first()
            if taken is None:
                return code
        raise PersistenceError("Could not allocate a unique copy code")

    @staticmethod
    def _owner_percentage(value) -> Decimal:
        if value is None:
            return DEFAULT_OWNER_PERCENTAGE
        percentage = to_decimal(value, "percentage")
        if percentage < MIN_OWNER_PERCENTAGE or percentage > MAX_OWNER_PERCENTAGE:
            raise ValidationError("Percentage must be between 0.1 and 100", field="percentage")
        return percentage

    @staticmethod
    def _non_negative(value, field: str) -> Decimal:
        if value is None:
            return ZERO
        amount = quantize(to_decimal(value, field))
        if amount < ZERO:
            raise ValidationError(f"{field} must not be negative", field=field)
        return amount

    def _optional_non_negative(self, value, field: str) -> Optional[Decimal]:
        if value is None:
            return None
        return self._non_negative(value, field)
