"""
Periodic Ledger Sweep.

============================================================
PURPOSE
============================================================
Runs on an independent timer, concurrently with user requests:

1. Profit settlement of expired pending-profit orders
2. Trading-volume projection from balance rows

The sweep body is synchronous database work; the async loop
runs it in a worker thread so the API event loop stays free.

============================================================
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from core.clock import ClockFactory, ClockProtocol
from core.config import SchedulerConfig
from accounts.trading_volume import ProjectionResult, VolumeProjection
from copy_trading.settlement import ProfitSettlementService, SweepResult

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    settlement: Optional[SweepResult] = None
    projection: Optional[ProjectionResult] = None
    errors: Dict[str, str] = field(default_factory=dict)


class LedgerScheduler:
    """Settlement + projection sweep, run once or on a background loop."""

    def __init__(
        self,
        settlement: ProfitSettlementService,
        projection: VolumeProjection,
        config: Optional[SchedulerConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._settlement = settlement
        self._projection = projection
        self._config = config or SchedulerConfig()
        self._clock = clock or ClockFactory.get_clock()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._sweep_lock = threading.Lock()
        self._sweeps = 0
        self._last_run = None

    @property
    def is_running(self) -> bool:
        return self._running

    def run_once(self) -> SweepReport:
        """
        One full sweep.

        Each stage is isolated: a failing stage is logged and the
        next one still runs. Failed stages retry on the next sweep.
        """
        report = SweepReport()
        with self._sweep_lock:
            try:
                report.settlement = self._settlement.run_sweep()
            except Exception as e:
                logger.error(f"Settlement stage failed: {e}", exc_info=True)
                report.errors["settlement"] = str(e)

            try:
                report.projection = self._projection.run()
            except Exception as e:
                logger.error(f"Volume projection stage failed: {e}", exc_info=True)
                report.errors["projection"] = str(e)

            self._sweeps += 1
            self._last_run = self._clock.now()
        return report

    # =========================================================
    # BACKGROUND LOOP
    # =========================================================

    async def start(self) -> None:
        """Start background sweep loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Started ledger sweep every {self._config.interval_seconds}s")

    async def stop(self) -> None:
        """Stop background sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stopped ledger sweep")

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.to_thread(self.run_once)
                await asyncio.sleep(self._config.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Background sweep error: {e}")
                await asyncio.sleep(5)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "sweeps": self._sweeps,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "interval_seconds": self._config.interval_seconds,
        }
