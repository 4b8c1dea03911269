"""
Accounts Package.

Balance store, trading-volume tracker and transfer engine.
"""

from accounts.balance_store import BalanceStore
from accounts.trading_volume import TradingVolumeTracker, VolumeProjection, VolumeStatus
from accounts.transfer_engine import TransferEngine

__all__ = [
    "BalanceStore",
    "TradingVolumeTracker",
    "VolumeProjection",
    "VolumeStatus",
    "TransferEngine",
]
