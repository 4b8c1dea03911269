"""
Trading-Volume Tracker.

============================================================
PURPOSE
============================================================
One aggregate record per (user, asset) comparing cumulative
trading volume with the required threshold.

The aggregate is a projection of the spot and futures balance
rows of the tracked asset:

    total_trading_volume = sum(balance)
    required_volume      = sum(required_volume)

VolumeProjection recomputes it from fresh reads on every sweep
(last writer wins). The only other writer is set_required_volume,
called right after an exchange -> trade transfer.

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.constants import TRACKED_ASSET_ID, ZERO, AccountType
from core.exceptions import ConcurrentModificationError
from database.engine import transaction_scope
from database.models import AccountBalance, TradingVolume
from accounts.balance_store import default_asset_name, quantize


logger = logging.getLogger(__name__)


# =============================================================
# VOLUME STATUS
# =============================================================

@dataclass(frozen=True)
class VolumeStatus:
    """Snapshot of a user's volume obligation for one asset."""

    asset_id: str
    required_volume: Decimal
    total_trading_volume: Decimal

    @property
    def volume_met(self) -> bool:
        return self.total_trading_volume >= self.required_volume

    @property
    def remaining_volume(self) -> Decimal:
        return max(ZERO, self.required_volume - self.total_trading_volume)

    @property
    def progress_percentage(self) -> Decimal:
        if self.required_volume <= ZERO:
            return Decimal("100")
        ratio = self.total_trading_volume / self.required_volume * 100
        return min(Decimal("100"), ratio).quantize(Decimal("0.01"))


# =============================================================
# TRACKER
# =============================================================

class TradingVolumeTracker:
    """Trading-volume repository bound to one session."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        self._session = session
        self._clock = clock or ClockFactory.get_clock()
        self._logger = logging.getLogger("repository.TradingVolumeTracker")

    def get(self, user_id: str, asset_id: str, for_update: bool = False) -> Optional[TradingVolume]:
        stmt = select(TradingVolume).where(
            TradingVolume.user_id == user_id,
            TradingVolume.asset_id == asset_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.execute(stmt).scalar_one_or_none()

    def get_or_create(
        self,
        user_id: str,
        asset_id: str,
        asset_name: Optional[str] = None,
    ) -> TradingVolume:
        """Idempotent: exactly one record per (user, asset)."""
        record = self.get(user_id, asset_id, for_update=True)
        if record is not None:
            return record

        record = TradingVolume(
            user_id=user_id,
            asset_id=asset_id,
            asset_name=asset_name or default_asset_name(asset_id),
            total_trading_volume=ZERO,
            required_volume=ZERO,
            last_updated=self._clock.now(),
        )
        try:
            with self._session.begin_nested():
                self._session.add(record)
        except IntegrityError:
            self._logger.info(f"Concurrent create of trading volume {user_id}/{asset_id}, re-reading")
            return self.get(user_id, asset_id, for_update=True)

        self._logger.info(f"Created trading volume record {user_id}/{asset_id}")
        return record

    def set_required_volume(self, user_id: str, asset_id: str, value: Decimal) -> TradingVolume:
        """Overwrite the threshold."""
        record = self.get_or_create(user_id, asset_id)
        record.required_volume = quantize(value)
        record.last_updated = self._clock.now()
        self._session.flush()

        self._logger.info(f"Required volume {user_id}/{asset_id} set to {record.required_volume}")
        return record

    def status(self, user_id: str, asset_id: str) -> VolumeStatus:
        """
        Current volume status.

        An absent record reads as zero required / zero traded,
        which counts as volume met.
        """
        record = self.get(user_id, asset_id)
        if record is None:
            return VolumeStatus(asset_id=asset_id, required_volume=ZERO, total_trading_volume=ZERO)
        return VolumeStatus(
            asset_id=asset_id,
            required_volume=record.required_volume or ZERO,
            total_trading_volume=record.total_trading_volume or ZERO,
        )


# =============================================================
# PROJECTION
# =============================================================

@dataclass
class ProjectionResult:
    users_seen: int = 0
    records_written: int = 0
    conflicts: int = 0


class VolumeProjection:
    """
    Recomputes aggregate trading-volume records from balance rows.

    The first pass only finds the users holding tracked balances.
    Each user is then locked and re-summed in its own transaction,
    so a transfer landing between the two passes is never
    overwritten with stale sums. A conflicting concurrent write is
    skipped and picked up by the next sweep.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
        asset_id: str = TRACKED_ASSET_ID,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._asset_id = asset_id

    def _tracked_rows(self):
        return (
            AccountBalance.asset_id == self._asset_id,
            AccountBalance.account_type.in_(
                [AccountType.SPOT.value, AccountType.FUTURES.value]
            ),
        )

    def pending_users(self, user_ids: Optional[List[str]] = None) -> List[str]:
        """Users holding spot or futures rows of the tracked asset."""
        stmt = (
            select(AccountBalance.user_id)
            .where(*self._tracked_rows())
            .distinct()
            .order_by(AccountBalance.user_id)
        )
        if user_ids is not None:
            stmt = stmt.where(AccountBalance.user_id.in_(user_ids))
        with transaction_scope(self._session_factory) as session:
            return list(session.execute(stmt).scalars())

    def compute(self, session: Session, user_id: str) -> Dict[str, Decimal]:
        """Sum one user's spot and futures balance rows."""
        stmt = select(
            func.sum(AccountBalance.balance),
            func.sum(func.coalesce(AccountBalance.required_volume, 0)),
        ).where(AccountBalance.user_id == user_id, *self._tracked_rows())
        total, required = session.execute(stmt).one()
        return {
            "total": quantize(Decimal(str(total or 0))),
            "required": quantize(Decimal(str(required or 0))),
        }

    def run(self, user_ids: Optional[List[str]] = None) -> ProjectionResult:
        result = ProjectionResult()

        for user_id in self.pending_users(user_ids):
            result.users_seen += 1
            try:
                with transaction_scope(self._session_factory) as session:
                    self._write(session, user_id)
                result.records_written += 1
            except ConcurrentModificationError as e:
                result.conflicts += 1
                logger.warning(f"Volume projection for {user_id} skipped: {e.message}")

        logger.info(
            f"Volume projection: users={result.users_seen} "
            f"written={result.records_written} conflicts={result.conflicts}"
        )
        return result

    def _write(self, session: Session, user_id: str) -> None:
        # Tracker row is locked before the balances are summed.
        tracker = TradingVolumeTracker(session, self._clock)
        record = tracker.get_or_create(user_id, self._asset_id)
        values = self.compute(session, user_id)
        record.total_trading_volume = values["total"]
        record.required_volume = values["required"]
        record.last_updated = self._clock.now()
