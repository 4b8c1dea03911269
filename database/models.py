"""
Database ORM Models - Ledger Tables.

============================================================
LEDGER DATABASE SCHEMA
============================================================

Tables:
- account_balances: per (user, account type, asset) balance
- trading_volumes: per (user, asset) volume aggregate
- transfer_records: immutable transfer audit entries
- copy_orders: owner and follower orders (spot and futures)
- order_fills: execution fill records of copy orders
- profit_settlements: one row per settled follower order
- vip_tiers: VIP tier reference data

Money columns are Numeric(28, 8) and handled as Decimal.
Balance, volume and order rows carry a version column used
for optimistic concurrency checks.

============================================================
"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index,
    Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from core.constants import MONEY_PRECISION, MONEY_SCALE
from .engine import Base


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def utc_now():
    """Get current naive UTC timestamp."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def Money(**kwargs):
    return Column(Numeric(MONEY_PRECISION, MONEY_SCALE, asdecimal=True), **kwargs)


# =============================================================
# 1. ACCOUNT BALANCES
# =============================================================

class AccountBalance(Base):
    """
    Balance of one asset in one account of one user.

    Created lazily on first credit. Never deleted.
    required_volume is only meaningful on spot/futures rows.
    """
    __tablename__ = "account_balances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    account_type = Column(String(16), nullable=False)
    asset_id = Column(String(32), nullable=False)
    asset_name = Column(String(32), nullable=False)

    balance = Money(nullable=False, default=0)
    required_volume = Money(nullable=True)
    trading_volume_id = Column(
        Integer, ForeignKey("trading_volumes.id"), nullable=True,
    )

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    trading_volume = relationship("TradingVolume")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("user_id", "account_type", "asset_id", name="uq_balance_owner_asset"),
        CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
        Index("ix_balance_asset_account", "asset_id", "account_type"),
    )

    def __repr__(self):
        return f"<AccountBalance {self.user_id}/{self.account_type}/{self.asset_id}={self.balance}>"


# =============================================================
# 2. TRADING VOLUMES
# =============================================================

class TradingVolume(Base):
    """
    Aggregate trading volume against the required threshold.

    Derived projection of the spot and futures balance rows,
    refreshed by the periodic sweep.
    """
    __tablename__ = "trading_volumes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    asset_id = Column(String(32), nullable=False)
    asset_name = Column(String(32), nullable=False)

    total_trading_volume = Money(nullable=False, default=0)
    required_volume = Money(nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=utc_now)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("user_id", "asset_id", name="uq_trading_volume_user_asset"),
    )


# =============================================================
# 3. TRANSFER RECORDS
# =============================================================

class TransferRecord(Base):
    """
    Audit entry of one completed transfer.

    Written in the same transaction as the balance mutations.
    """
    __tablename__ = "transfer_records"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(64), nullable=False, index=True)

    from_account = Column(String(16), nullable=False)
    to_account = Column(String(16), nullable=False)
    asset_id = Column(String(32), nullable=False)
    asset_name = Column(String(32), nullable=False)

    amount = Money(nullable=False)
    fee = Money(nullable=False, default=0)
    fee_type = Column(String(20), nullable=False)
    net_amount = Money(nullable=False)

    # Volume snapshot at transfer time
    required_volume = Money(nullable=False, default=0)
    current_volume = Money(nullable=False, default=0)
    volume_met = Column(Boolean, nullable=False, default=True)

    status = Column(String(16), nullable=False)
    transfer_type = Column(String(24), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("ix_transfer_user_created", "user_id", "created_at"),
        CheckConstraint("fee >= 0", name="ck_transfer_fee_non_negative"),
    )


# =============================================================
# 4. COPY ORDERS
# =============================================================

class CopyOrder(Base):
    """
    Owner or follower copy-trading order.

    market is "spot" or "futures". Spot orders use price/quantity,
    futures orders use trigger_price/quantity (size) and price_way.
    """
    __tablename__ = "copy_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    market = Column(String(16), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    owner = Column(Boolean, nullable=False, default=False)
    copy_code = Column(String(16), nullable=False, index=True)
    source_order_id = Column(String(36), ForeignKey("copy_orders.id"), nullable=True)

    symbol = Column(String(32), nullable=False)
    side = Column(String(8), nullable=False)
    order_type = Column(String(16), nullable=False, default="limit")
    quantity = Money(nullable=False)

    # Spot terms
    price = Money(nullable=True)
    limit_price = Money(nullable=True)

    # Futures terms
    leverage = Column(String(8), nullable=True)
    open_type = Column(String(16), nullable=True)
    trigger_price = Money(nullable=True)
    executive_price = Money(nullable=True)
    price_way = Column(Integer, nullable=True)
    price_type = Column(Integer, nullable=True)

    percentage = Money(nullable=False)
    expiration = Column(DateTime, nullable=True)
    status = Column(String(24), nullable=False, index=True)

    average_execution_price = Money(nullable=True)
    executed_quantity = Money(nullable=False, default=0)
    quote_asset_id = Column(String(32), nullable=True)
    quote_asset_name = Column(String(32), nullable=True)

    # Settlement bookkeeping
    settlement_attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    settled_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    fills = relationship(
        "OrderFill",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderFill.executed_at",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("user_id", "copy_code", name="uq_copy_order_user_code"),
        Index("ix_copy_order_status_expiration", "status", "expiration"),
        Index("ix_copy_order_market_owner", "market", "owner", "status"),
    )


class OrderFill(Base):
    """Execution fill of a copy order."""
    __tablename__ = "order_fills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("copy_orders.id"), nullable=False, index=True)
    price = Money(nullable=False)
    quantity = Money(nullable=False)
    fee = Money(nullable=False, default=0)
    executed_at = Column(DateTime, nullable=False, default=utc_now)

    order = relationship("CopyOrder", back_populates="fills")


# =============================================================
# 5. PROFIT SETTLEMENTS
# =============================================================

class ProfitSettlement(Base):
    """
    Ledger entry of a settled follower order.

    The unique order_id makes crediting idempotent: a second
    settlement of the same order cannot be committed.
    """
    __tablename__ = "profit_settlements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("copy_orders.id"), nullable=False, unique=True)
    user_id = Column(String(64), nullable=False, index=True)
    account_type = Column(String(16), nullable=False)
    asset_id = Column(String(32), nullable=False)

    entry_price = Money(nullable=False)
    exit_price = Money(nullable=False)
    quantity = Money(nullable=False)
    profit = Money(nullable=False)
    credited_amount = Money(nullable=False)

    settled_at = Column(DateTime, nullable=False, default=utc_now)


# =============================================================
# 6. VIP TIERS
# =============================================================

class VipTier(Base):
    """VIP tier: level gates futures copy trading, percentage sets profit."""
    __tablename__ = "vip_tiers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(64), nullable=False, unique=True)
    level = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active")
    percentage = Money(nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now)


__all__ = [
    "AccountBalance",
    "TradingVolume",
    "TransferRecord",
    "CopyOrder",
    "OrderFill",
    "ProfitSettlement",
    "VipTier",
    "generate_uuid",
    "utc_now",
]
