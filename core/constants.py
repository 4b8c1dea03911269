"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines the fixed contract values of the ledger.

- Account, transfer and fee-type enumerations (wire contract)
- The designated volume-tracked asset
- Copy-order limits

============================================================
DESIGN PRINCIPLES
============================================================
- Enumeration values are part of the wire contract, never renamed
- Tunable rates live in core.config, not here
- No business logic here

============================================================
"""

from decimal import Decimal
from enum import Enum


# ============================================================
# ACCOUNT TYPES
# ============================================================

class AccountType(str, Enum):
    """Logical account kinds held per user."""

    EXCHANGE = "exchange"
    SPOT = "spot"
    FUTURES = "futures"

    @property
    def is_trade(self) -> bool:
        return self in TRADE_ACCOUNTS


TRADE_ACCOUNTS = frozenset({AccountType.SPOT, AccountType.FUTURES})


# ============================================================
# TRANSFERS
# ============================================================

class TransferType(str, Enum):
    """Transfer direction recorded on every transfer record."""

    EXCHANGE_TO_TRADE = "exchange_to_trade"
    TRADE_TO_EXCHANGE = "trade_to_exchange"
    TRADE_TO_TRADE = "trade_to_trade"


class FeeType(str, Enum):
    """Fee classification applied to a transfer."""

    NO_FEE = "no_fee"
    PENALTY_FEE = "penalty_fee"
    WITHDRAWAL_FEE = "withdrawal_fee"


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================
# VOLUME-TRACKED ASSET
# ============================================================

TRACKED_ASSET_ID = "1280"
TRACKED_ASSET_NAME = "USDT"

# Quote asset used when a symbol carries no separator
DEFAULT_QUOTE_ASSET = TRACKED_ASSET_NAME

SYMBOL_SEPARATORS = ("_", "-")


# ============================================================
# ADMIN REPORTING
# ============================================================

# Transfer statistics windows, in days
STATS_PERIODS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_STATS_PERIOD = "30d"
TOP_ASSETS_LIMIT = 10

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# ============================================================
# COPY ORDERS
# ============================================================

COPY_CODE_LENGTH = 6
COPY_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
COPY_CODE_MAX_DRAWS = 20

MIN_OWNER_PERCENTAGE = Decimal("0.1")
MAX_OWNER_PERCENTAGE = Decimal("100")
DEFAULT_OWNER_PERCENTAGE = Decimal("1")

DEFAULT_FUTURES_LEVERAGE = "10"
DEFAULT_FUTURES_OPEN_TYPE = "cross"
DEFAULT_FUTURES_PRICE_TYPE = 1

# price_way values on futures orders
PRICE_WAY_LONG = 1
PRICE_WAY_SHORT = 2


# ============================================================
# MONEY
# ============================================================

# Numeric(28, 8) columns
MONEY_PRECISION = 28
MONEY_SCALE = 8
MONEY_QUANTUM = Decimal("0.00000001")
ZERO = Decimal("0")
