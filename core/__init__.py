"""
Core Module Package.

This package contains the infrastructure components that all
ledger modules depend on.

Components:
- clock: Unified time abstraction
- constants: Wire-contract enumerations and fixed values
- exceptions: Ledger exception hierarchy
- config: Environment-driven configuration
- log_config: Process logging setup
- context: Authenticated user context
"""

from core.clock import ClockProtocol, SystemClock, MockClock, ClockFactory, now_utc
from core.config import LedgerConfig
from core.context import UserContext

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "now_utc",
    "LedgerConfig",
    "UserContext",
]
