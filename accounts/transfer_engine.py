"""
Transfer Engine.

============================================================
PURPOSE
============================================================
Moves funds between a user's exchange, spot and futures
accounts.

Exchange -> Trade   fee free; tracked asset creates a volume
                    obligation of multiplier x amount
Trade -> Exchange   tracked asset only; penalty fee while the
                    required volume is not met
Trade <-> Trade     fee free; no volume side effects

============================================================
ATOMICITY
============================================================
Inputs are validated before any read. The debit, the credit
and the transfer record of one transfer share a single
transaction_scope: either all are committed or none is.

============================================================
"""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.config import FeePolicyConfig
from core.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_STATS_PERIOD,
    MAX_PAGE_SIZE,
    STATS_PERIODS,
    TOP_ASSETS_LIMIT,
    TRACKED_ASSET_ID,
    ZERO,
    AccountType,
    FeeType,
    TransferStatus,
    TransferType,
)
from core.exceptions import (
    InsufficientExchangeBalanceError,
    InsufficientTradeBalanceError,
    LedgerException,
    UnsupportedAssetError,
    ValidationError,
)
from database.engine import transaction_scope
from database.models import AccountBalance, TransferRecord
from notifications.dispatcher import NotificationDispatcher, NotificationEvent
from accounts.balance_store import (
    BalanceStore,
    default_asset_name,
    parse_account_type,
    positive_amount,
    quantize,
)
from accounts.trading_volume import TradingVolumeTracker, VolumeStatus


logger = logging.getLogger(__name__)


def _require_asset(asset_id) -> str:
    if asset_id is None or not str(asset_id).strip():
        raise ValidationError("coinId is required", field="coinId")
    return str(asset_id).strip()


def _parse_transfer_type(value) -> TransferType:
    try:
        return TransferType(value)
    except ValueError:
        raise ValidationError(f"Unknown transfer type {value}", field="transferType")


def _sum(value) -> Decimal:
    return quantize(Decimal(str(value or 0)))


@dataclass
class TransferPage:
    records: List[TransferRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


class TransferEngine:
    """
    Orchestrates transfers between account types.

    One instance per process; each call opens its own transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        fee_policy: Optional[FeePolicyConfig] = None,
        clock: Optional[ClockProtocol] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._fees = fee_policy or FeePolicyConfig()
        self._clock = clock or ClockFactory.get_clock()
        self._notifier = notifier

    # =========================================================
    # FEE POLICY
    # =========================================================

    def compute_fee(self, amount: Decimal, status: VolumeStatus) -> Tuple[Decimal, FeeType]:
        """Fee for a trade -> exchange withdrawal of `amount`."""
        if status.volume_met:
            fee = quantize(amount * self._fees.withdrawal_rate)
            fee_type = FeeType.WITHDRAWAL_FEE if fee > ZERO else FeeType.NO_FEE
        else:
            fee = quantize(amount * self._fees.penalty_rate)
            fee_type = FeeType.PENALTY_FEE
        return fee, fee_type

    # =========================================================
    # EXCHANGE -> TRADE
    # =========================================================

    def transfer_to_trade(
        self,
        user_id: str,
        amount,
        destination,
        asset_id,
        asset_name: Optional[str] = None,
    ) -> TransferRecord:
        amount = positive_amount(amount)
        destination = parse_account_type(destination, "destination")
        if not destination.is_trade:
            raise ValidationError("Invalid destination. Must be spot or futures", field="destination")
        asset_id = _require_asset(asset_id)
        asset_name = asset_name or default_asset_name(asset_id)

        def apply(session: Session) -> TransferRecord:
            store = BalanceStore(session, self._fees.volume_multiplier)
            tracker = TradingVolumeTracker(session, self._clock)

            store.debit(
                user_id, AccountType.EXCHANGE, asset_id, amount,
                error_class=InsufficientExchangeBalanceError,
            )

            required = ZERO
            current = ZERO
            if asset_id == TRACKED_ASSET_ID:
                required = quantize(amount * self._fees.volume_multiplier)
                volume = tracker.get_or_create(user_id, asset_id, asset_name)
                target = store.credit(
                    user_id, destination, asset_id, amount,
                    asset_name=asset_name, trading_volume=volume,
                )
                store.set_required_volume(target, required)
                volume = tracker.set_required_volume(user_id, asset_id, required)
                current = volume.total_trading_volume or ZERO
            else:
                store.credit(user_id, destination, asset_id, amount, asset_name=asset_name)

            return self._record(
                session, user_id, AccountType.EXCHANGE, destination,
                asset_id, asset_name, amount, ZERO, FeeType.NO_FEE,
                required, current, TransferType.EXCHANGE_TO_TRADE,
            )

        return self._execute(TransferType.EXCHANGE_TO_TRADE, user_id, apply)

    # =========================================================
    # TRADE -> EXCHANGE
    # =========================================================

    def transfer_to_exchange(
        self,
        user_id: str,
        amount,
        source,
        asset_id,
        asset_name: Optional[str] = None,
    ) -> TransferRecord:
        amount = positive_amount(amount)
        source = parse_account_type(source, "source")
        if not source.is_trade:
            raise ValidationError("Invalid source. Must be spot or futures", field="source")
        asset_id = _require_asset(asset_id)
        if asset_id != TRACKED_ASSET_ID:
            raise UnsupportedAssetError(asset_id)
        asset_name = asset_name or default_asset_name(asset_id)

        def apply(session: Session) -> TransferRecord:
            store = BalanceStore(session, self._fees.volume_multiplier)
            status = TradingVolumeTracker(session, self._clock).status(user_id, asset_id)

            fee, fee_type = self.compute_fee(amount, status)
            net_amount = amount - fee

            store.debit(
                user_id, source, asset_id, amount,
                error_class=InsufficientTradeBalanceError,
            )
            if net_amount > ZERO:
                store.credit(user_id, AccountType.EXCHANGE, asset_id, net_amount, asset_name=asset_name)

            return self._record(
                session, user_id, source, AccountType.EXCHANGE,
                asset_id, asset_name, amount, fee, fee_type,
                status.required_volume, status.total_trading_volume,
                TransferType.TRADE_TO_EXCHANGE,
            )

        return self._execute(TransferType.TRADE_TO_EXCHANGE, user_id, apply)

    # =========================================================
    # TRADE <-> TRADE
    # =========================================================

    def transfer_between_trade(
        self,
        user_id: str,
        amount,
        from_account,
        to_account,
        asset_id,
        asset_name: Optional[str] = None,
    ) -> TransferRecord:
        amount = positive_amount(amount)
        from_account = parse_account_type(from_account, "fromAccount")
        to_account = parse_account_type(to_account, "toAccount")
        if not (from_account.is_trade and to_account.is_trade):
            raise ValidationError("Both accounts must be spot or futures", field="fromAccount")
        if from_account == to_account:
            raise ValidationError("fromAccount and toAccount must differ", field="toAccount")
        asset_id = _require_asset(asset_id)
        asset_name = asset_name or default_asset_name(asset_id)

        def apply(session: Session) -> TransferRecord:
            store = BalanceStore(session, self._fees.volume_multiplier)

            # Lock both rows in a fixed order
            for account in sorted((from_account, to_account), key=lambda a: a.value):
                store.get_balance(user_id, account, asset_id, for_update=True)

            status = TradingVolumeTracker(session, self._clock).status(user_id, asset_id)

            store.debit(
                user_id, from_account, asset_id, amount,
                error_class=InsufficientTradeBalanceError,
            )
            store.credit(user_id, to_account, asset_id, amount, asset_name=asset_name)

            return self._record(
                session, user_id, from_account, to_account,
                asset_id, asset_name, amount, ZERO, FeeType.NO_FEE,
                status.required_volume, status.total_trading_volume,
                TransferType.TRADE_TO_TRADE,
            )

        return self._execute(TransferType.TRADE_TO_TRADE, user_id, apply)

    # =========================================================
    # QUERIES
    # =========================================================

    def history(self, user_id: str, limit: int = 100) -> List[TransferRecord]:
        """User's transfers, newest first."""
        with transaction_scope(self._session_factory) as session:
            stmt = (
                select(TransferRecord)
                .where(TransferRecord.user_id == user_id)
                .order_by(TransferRecord.created_at.desc(), TransferRecord.id.desc())
                .limit(limit)
            )
            return list(session.execute(stmt).scalars())

    def volume_status(self, user_id: str, asset_id: str = TRACKED_ASSET_ID) -> dict:
        """Volume status plus the fee schedule that applies to it."""
        asset_id = _require_asset(asset_id)
        with transaction_scope(self._session_factory) as session:
            status = TradingVolumeTracker(session, self._clock).status(user_id, asset_id)

        return {
            "coin_id": asset_id,
            "coin_name": default_asset_name(asset_id),
            "required_volume": status.required_volume,
            "current_volume": status.total_trading_volume,
            "volume_met": status.volume_met,
            "remaining_volume": status.remaining_volume,
            "progress_percentage": status.progress_percentage,
            "withdrawal_fee": self._fees.withdrawal_rate,
            "penalty_fee": self._fees.penalty_rate,
        }

    def balances(self, user_id: str, account_type=None) -> List[AccountBalance]:
        if account_type is not None:
            account_type = parse_account_type(account_type)
        with transaction_scope(self._session_factory) as session:
            return BalanceStore(session).list_balances(user_id, account_type)

    # =========================================================
    # ADMIN QUERIES
    # =========================================================

    def all_transfers(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        status: Optional[str] = None,
        transfer_type=None,
        asset_id: Optional[str] = None,
    ) -> TransferPage:
        """All users' transfers, newest first, one page at a time."""
        if page < 1:
            raise ValidationError("page must be 1 or greater", field="page")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")

        filters = []
        if status:
            filters.append(TransferRecord.status == status)
        if transfer_type:
            filters.append(TransferRecord.transfer_type == _parse_transfer_type(transfer_type).value)
        if asset_id:
            filters.append(TransferRecord.asset_id == asset_id)

        with transaction_scope(self._session_factory) as session:
            total = session.execute(
                select(func.count(TransferRecord.id)).where(*filters)
            ).scalar_one()
            stmt = (
                select(TransferRecord)
                .where(*filters)
                .order_by(TransferRecord.created_at.desc(), TransferRecord.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            records = list(session.execute(stmt).scalars())

        return TransferPage(records=records, total=total, page=page, limit=limit)

    def transfer_stats(self, period: str = DEFAULT_STATS_PERIOD) -> dict:
        """
        Transfer totals over the last 7, 30 or 90 days.

        Fees only count transfers that charged one. Top assets are
        ranked by transferred amount.
        """
        if period not in STATS_PERIODS:
            raise ValidationError(
                f"period must be one of {', '.join(STATS_PERIODS)}", field="period",
            )
        since = self._clock.now() - timedelta(days=STATS_PERIODS[period])
        in_window = TransferRecord.created_at >= since
        volume = func.sum(TransferRecord.amount)

        with transaction_scope(self._session_factory) as session:
            total_transfers, total_volume = session.execute(
                select(func.count(TransferRecord.id), volume).where(in_window)
            ).one()
            total_fees = session.execute(
                select(func.sum(TransferRecord.fee)).where(in_window, TransferRecord.fee > 0)
            ).scalar_one()
            by_type = session.execute(
                select(TransferRecord.transfer_type, func.count(TransferRecord.id), volume)
                .where(in_window)
                .group_by(TransferRecord.transfer_type)
                .order_by(TransferRecord.transfer_type)
            ).all()
            by_status = session.execute(
                select(TransferRecord.status, func.count(TransferRecord.id))
                .where(in_window)
                .group_by(TransferRecord.status)
                .order_by(TransferRecord.status)
            ).all()
            top_assets = session.execute(
                select(TransferRecord.asset_name, volume, func.count(TransferRecord.id))
                .where(in_window)
                .group_by(TransferRecord.asset_name)
                .order_by(volume.desc())
                .limit(TOP_ASSETS_LIMIT)
            ).all()

        return {
            "period": period,
            "since": since,
            "total_transfers": total_transfers,
            "total_volume": _sum(total_volume),
            "total_fees": _sum(total_fees),
            "transfers_by_type": [
                {"transfer_type": t, "count": c, "volume": _sum(v)} for t, c, v in by_type
            ],
            "transfers_by_status": [
                {"status": s, "count": c} for s, c in by_status
            ],
            "top_assets": [
                {"asset_name": name, "volume": _sum(v), "count": c} for name, v, c in top_assets
            ],
        }

    def user_transfer_details(
        self,
        user_id: str,
        asset_id: Optional[str] = None,
        account_type=None,
    ) -> dict:
        """
        One user's transfers, optionally narrowed to an asset and a
        destination account. Volume status is attached when both
        filters are given.
        """
        stmt = select(TransferRecord).where(TransferRecord.user_id == user_id)
        if asset_id:
            stmt = stmt.where(TransferRecord.asset_id == asset_id)
        if account_type is not None:
            account_type = parse_account_type(account_type, "accountType")
            stmt = stmt.where(TransferRecord.to_account == account_type.value)
        stmt = stmt.order_by(TransferRecord.created_at.desc(), TransferRecord.id.desc())

        with transaction_scope(self._session_factory) as session:
            transfers = list(session.execute(stmt).scalars())

        volume_status = None
        if asset_id and account_type is not None:
            volume_status = self.volume_status(user_id, asset_id)
        return {"transfers": transfers, "volume_status": volume_status}

    # =========================================================
    # PROTECTED HELPERS
    # =========================================================

    def _execute(self, transfer_type: TransferType, user_id: str, apply) -> TransferRecord:
        try:
            with transaction_scope(self._session_factory) as session:
                record = apply(session)
        except LedgerException as e:
            logger.warning(f"Transfer {transfer_type.value} rejected for {user_id}: {e.message}")
            raise

        logger.info(
            f"Transfer {record.id} {transfer_type.value} user={user_id} "
            f"{record.from_account}->{record.to_account} amount={record.amount} "
            f"fee={record.fee} ({record.fee_type}) net={record.net_amount}"
        )
        self._notify(record)
        return record

    def _record(
        self,
        session: Session,
        user_id: str,
        from_account: AccountType,
        to_account: AccountType,
        asset_id: str,
        asset_name: str,
        amount: Decimal,
        fee: Decimal,
        fee_type: FeeType,
        required_volume: Decimal,
        current_volume: Decimal,
        transfer_type: TransferType,
    ) -> TransferRecord:
        now = self._clock.now()
        record = TransferRecord(
            user_id=user_id,
            from_account=from_account.value,
            to_account=to_account.value,
            asset_id=asset_id,
            asset_name=asset_name,
            amount=amount,
            fee=fee,
            fee_type=fee_type.value,
            net_amount=amount - fee,
            required_volume=required_volume,
            current_volume=current_volume,
            volume_met=current_volume >= required_volume,
            status=TransferStatus.COMPLETED.value,
            transfer_type=transfer_type.value,
            created_at=now,
            updated_at=now,
        )
        session.add(record)
        session.flush()
        return record

    def _notify(self, record: TransferRecord) -> None:
        if self._notifier is None:
            return
        self._notifier.notify(
            NotificationEvent.TRANSFER_COMPLETED,
            record.user_id,
            "Transfer completed",
            transfer_id=record.id,
            direction=f"{record.from_account} -> {record.to_account}",
            amount=f"{record.amount} {record.asset_name}",
            fee=f"{record.fee} ({record.fee_type})",
            net_amount=str(record.net_amount),
        )
