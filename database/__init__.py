"""
Database Package Initialization.

============================================================
LEDGER DATABASE PERSISTENCE LAYER
============================================================

Every balance mutation, transfer record, follow and
settlement is written inside an explicit transaction_scope.
Failures roll back the whole unit and raise.

============================================================
"""

# Core engine and session management
from .engine import (
    # Declarative base
    Base,

    # Engine creation
    create_database_engine,
    create_session_factory,
    configure_database,
    get_engine,
    get_session_factory,

    # Session management
    transaction_scope,

    # Database initialization
    verify_database_connection,
    create_all_tables,
)

# ORM Models
from .models import (
    AccountBalance,
    TradingVolume,
    TransferRecord,
    CopyOrder,
    OrderFill,
    ProfitSettlement,
    VipTier,
)

__all__ = [
    "Base",
    "create_database_engine",
    "create_session_factory",
    "configure_database",
    "get_engine",
    "get_session_factory",
    "transaction_scope",
    "verify_database_connection",
    "create_all_tables",
    "AccountBalance",
    "TradingVolume",
    "TransferRecord",
    "CopyOrder",
    "OrderFill",
    "ProfitSettlement",
    "VipTier",
]
