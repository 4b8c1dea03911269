"""
Scheduler Package.

Periodic settlement and trading-volume projection sweep.
"""

from scheduler.service import LedgerScheduler, SweepReport

__all__ = ["LedgerScheduler", "SweepReport"]
