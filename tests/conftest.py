"""
Shared fixtures.

Every test gets its own file-backed SQLite database and a
mock clock frozen at 2025-01-01 12:00 UTC.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from core.clock import MockClock
from core.constants import TRACKED_ASSET_ID, AccountType
from database.engine import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
)
from accounts.balance_store import BalanceStore


START = datetime(2025, 1, 1, 12, 0, 0)


@pytest.fixture
def engine(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock():
    return MockClock(START)


@pytest.fixture
def fund(session_factory):
    """Credit a balance directly, bypassing the transfer engine."""

    def _fund(user_id, account_type, amount, asset_id=TRACKED_ASSET_ID, asset_name=None):
        with transaction_scope(session_factory) as session:
            return BalanceStore(session).credit(
                user_id, AccountType(account_type), asset_id, Decimal(str(amount)),
                asset_name=asset_name,
            )

    return _fund


@pytest.fixture
def balance_of(session_factory):
    """Current balance row, or None."""

    def _balance_of(user_id, account_type, asset_id=TRACKED_ASSET_ID):
        with transaction_scope(session_factory) as session:
            return BalanceStore(session).get_balance(user_id, AccountType(account_type), asset_id)

    return _balance_of
