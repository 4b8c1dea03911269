"""
Tests for the periodic ledger sweep.
"""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from core.config import SchedulerConfig
from accounts.trading_volume import ProjectionResult
from copy_trading.settlement import SweepResult
from scheduler.service import LedgerScheduler


@pytest.fixture
def settlement():
    mock = MagicMock()
    mock.run_sweep.return_value = SweepResult(due=1, settled=1)
    return mock


@pytest.fixture
def projection():
    mock = MagicMock()
    mock.run.return_value = ProjectionResult(users_seen=2, records_written=2)
    return mock


class TestLedgerScheduler:
    """Sweep orchestration."""

    def test_run_once_runs_both_stages(self, settlement, projection, clock):
        scheduler = LedgerScheduler(settlement, projection, clock=clock)

        report = scheduler.run_once()

        assert report.settlement.settled == 1
        assert report.projection.records_written == 2
        assert report.errors == {}
        stats = scheduler.get_statistics()
        assert stats["sweeps"] == 1
        assert stats["last_run"] == clock.now().isoformat()

    def test_failing_stage_does_not_stop_the_other(self, settlement, projection, clock):
        settlement.run_sweep.side_effect = RuntimeError("db down")
        scheduler = LedgerScheduler(settlement, projection, clock=clock)

        report = scheduler.run_once()

        assert "settlement" in report.errors
        assert report.projection is not None
        projection.run.assert_called_once()

    def test_background_loop_start_stop(self, settlement, projection, clock):
        scheduler = LedgerScheduler(
            settlement, projection, config=SchedulerConfig(interval_seconds=0.01), clock=clock,
        )

        async def exercise():
            await scheduler.start()
            assert scheduler.is_running
            await asyncio.sleep(0.1)
            await scheduler.stop()

        asyncio.run(exercise())

        assert not scheduler.is_running
        assert settlement.run_sweep.call_count >= 1


class TestSweepEndToEnd:
    """Real services against the test database."""

    def test_projection_runs_after_settlement(self, session_factory, clock, fund):
        from accounts.trading_volume import TradingVolumeTracker, VolumeProjection
        from copy_trading.settlement import ProfitSettlementService
        from database.engine import transaction_scope

        fund("u1", "spot", "75")
        scheduler = LedgerScheduler(
            ProfitSettlementService(session_factory, clock=clock),
            VolumeProjection(session_factory, clock=clock),
            clock=clock,
        )

        report = scheduler.run_once()

        assert report.errors == {}
        with transaction_scope(session_factory) as session:
            status = TradingVolumeTracker(session, clock).status("u1", "1280")
        assert status.total_trading_volume == Decimal("75")
