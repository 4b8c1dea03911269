"""
Copy Trading - Types.

Enumerations shared by the copy-order engine, settlement and API.
"""

from enum import Enum
from decimal import Decimal
from typing import Optional

from core.constants import DEFAULT_QUOTE_ASSET, SYMBOL_SEPARATORS, PRICE_WAY_LONG, PRICE_WAY_SHORT


class Market(str, Enum):
    SPOT = "spot"
    FUTURES = "futures"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def price_way(self) -> int:
        """Futures direction: buy opens long, sell opens short."""
        return PRICE_WAY_LONG if self == OrderSide.BUY else PRICE_WAY_SHORT


class OrderStatus(str, Enum):
    """Copy-order lifecycle states."""

    PENDING = "pending"
    PENDING_PROFIT = "pending_profit"
    PARTIAL = "partial"
    PARTIAL_CANCELLED = "partial_cancelled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.PARTIAL_CANCELLED,
    OrderStatus.FAILED,
})


class VipTierStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def quote_asset_of(symbol: str) -> str:
    """
    Quote asset of a trading symbol.

    "BTC_USDT" and "BTC-USDT" give "USDT"; a symbol without a
    separator falls back to the platform asset.
    """
    for separator in SYMBOL_SEPARATORS:
        parts = symbol.split(separator)
        if len(parts) > 1 and parts[1]:
            return parts[1].upper()
    return DEFAULT_QUOTE_ASSET


def signed_price(base: Decimal, percentage: Decimal, upward: bool) -> Decimal:
    """base x (1 +/- percentage / 100)."""
    factor = percentage / Decimal("100")
    if upward:
        return base * (Decimal("1") + factor)
    return base * (Decimal("1") - factor)
