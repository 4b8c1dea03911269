"""
Tests for the clock abstraction and logging setup.
"""

import logging
from datetime import datetime, timedelta, timezone

from core.clock import ClockFactory, MockClock, SystemClock, now_utc, to_naive_utc
from core.log_config import setup_logging


class TestClock:
    """Naive-UTC clock behaviour."""

    def test_to_naive_utc_converts_aware(self):
        aware = datetime(2025, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert to_naive_utc(aware) == datetime(2025, 1, 1, 12, 0)

    def test_system_clock_is_naive(self):
        assert SystemClock().now().tzinfo is None

    def test_is_expired(self):
        clock = MockClock(datetime(2025, 1, 1, 12, 0))
        deadline = datetime(2025, 1, 1, 12, 0)

        assert not clock.is_expired(None)
        assert not clock.is_expired(deadline)
        clock.advance(seconds=1)
        assert clock.is_expired(deadline)

    def test_use_mock_restores_previous_clock(self):
        before = ClockFactory.get_clock()

        with ClockFactory.use_mock(datetime(2030, 6, 1)) as mock:
            assert now_utc() == datetime(2030, 6, 1)
            mock.advance(days=1)
            assert now_utc() == datetime(2030, 6, 2)

        assert ClockFactory.get_clock() is before


class TestLogging:
    """Root logger configuration."""

    def test_setup_logging_replaces_root_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            logger = setup_logging("debug", "json")

            assert logger.name == "ledger"
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert '"level": "%(levelname)s"' in root.handlers[0].formatter._fmt
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
