"""
Copy Trading Package.

Owner/follower copy orders, their lifecycle and profit settlement.
"""

from copy_trading.types import Market, OrderSide, OrderStatus
from copy_trading.state_machine import OrderStateMachine, TransitionGuard, VALID_TRANSITIONS
from copy_trading.service import CopyTradingService
from copy_trading.settlement import ProfitSettlementService, SweepResult
from copy_trading.vip import VipTierService

__all__ = [
    "Market",
    "OrderSide",
    "OrderStatus",
    "OrderStateMachine",
    "TransitionGuard",
    "VALID_TRANSITIONS",
    "CopyTradingService",
    "ProfitSettlementService",
    "SweepResult",
    "VipTierService",
]
