"""
Balance Store.

============================================================
PURPOSE
============================================================
Per-user, per-account-type, per-asset balance records.

- credit: creates the record lazily or adds to it
- debit: rejects when funds are short, never goes negative
- trade account debits recompute required volume from the
  remaining balance (collateral ratio)

============================================================
CONCURRENCY
============================================================
Reads that precede a mutation lock the row (SELECT ... FOR
UPDATE where the dialect supports it). Each row also carries
a version column, so a stale write fails with StaleDataError
and the surrounding transaction_scope rolls back.

Lazy creation runs in a SAVEPOINT. A concurrent insert of the
same (user, account, asset) triple is resolved by re-reading.

============================================================
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import MONEY_QUANTUM, TRACKED_ASSET_ID, TRACKED_ASSET_NAME, ZERO, AccountType
from core.exceptions import InsufficientBalanceError, ValidationError
from database.models import AccountBalance, TradingVolume


# =============================================================
# AMOUNT HELPERS
# =============================================================

def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Convert an input value to Decimal, rejecting garbage."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", field=field)
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def positive_amount(value: Any, field: str = "amount") -> Decimal:
    amount = quantize(to_decimal(value, field))
    if amount <= ZERO:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    return amount


def quantize(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def parse_account_type(value: Any, field: str = "account_type") -> AccountType:
    try:
        return AccountType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}. Must be one of: exchange, spot, futures",
            field=field,
        )


def default_asset_name(asset_id: str) -> str:
    return TRACKED_ASSET_NAME if asset_id == TRACKED_ASSET_ID else asset_id


# =============================================================
# BALANCE STORE
# =============================================================

class BalanceStore:
    """
    Balance repository bound to one session (one transaction).

    Usage:
        with transaction_scope(factory) as session:
            store = BalanceStore(session)
            store.debit("u1", AccountType.EXCHANGE, "1280", Decimal("10"))
    """

    def __init__(self, session: Session, volume_multiplier: Decimal = Decimal("2")) -> None:
        self._session = session
        self._volume_multiplier = volume_multiplier
        self._logger = logging.getLogger("repository.BalanceStore")

    @property
    def session(self) -> Session:
        return self._session

    # =========================================================
    # QUERIES
    # =========================================================

    def get_balance(
        self,
        user_id: str,
        account_type: AccountType,
        asset_id: str,
        for_update: bool = False,
    ) -> Optional[AccountBalance]:
        """Get the balance record, or None when absent."""
        stmt = select(AccountBalance).where(
            AccountBalance.user_id == user_id,
            AccountBalance.account_type == AccountType(account_type).value,
            AccountBalance.asset_id == asset_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.execute(stmt).scalar_one_or_none()

    def find_by_asset_name(
        self,
        user_id: str,
        account_type: AccountType,
        asset_name: str,
    ) -> Optional[AccountBalance]:
        stmt = (
            select(AccountBalance)
            .where(
                AccountBalance.user_id == user_id,
                AccountBalance.account_type == AccountType(account_type).value,
                AccountBalance.asset_name == asset_name,
            )
            .order_by(AccountBalance.id)
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def list_balances(
        self,
        user_id: str,
        account_type: Optional[AccountType] = None,
    ) -> List[AccountBalance]:
        stmt = select(AccountBalance).where(AccountBalance.user_id == user_id)
        if account_type is not None:
            stmt = stmt.where(AccountBalance.account_type == AccountType(account_type).value)
        stmt = stmt.order_by(AccountBalance.account_type, AccountBalance.asset_id)
        return list(self._session.execute(stmt).scalars())

    # =========================================================
    # MUTATIONS
    # =========================================================

    def credit(
        self,
        user_id: str,
        account_type: AccountType,
        asset_id: str,
        amount: Decimal,
        asset_name: Optional[str] = None,
        trading_volume: Optional[TradingVolume] = None,
    ) -> AccountBalance:
        """
        Add funds, creating the record when absent.

        A new trade-account record seeds its required volume from
        the linked trading-volume threshold (zero when unlinked).
        """
        account_type = AccountType(account_type)
        amount = positive_amount(amount)

        record = self.get_balance(user_id, account_type, asset_id, for_update=True)
        if record is None:
            record = self._create(
                user_id, account_type, asset_id, amount,
                asset_name or default_asset_name(asset_id), trading_volume,
            )
            if record is not None:
                self._logger.info(
                    f"Created {account_type.value} balance {user_id}/{asset_id} = {amount}"
                )
                return record
            # Lost the insert race, fall through and add to the winner's row
            record = self.get_balance(user_id, account_type, asset_id, for_update=True)

        record.balance = quantize(record.balance + amount)
        if trading_volume is not None and record.trading_volume_id is None:
            record.trading_volume = trading_volume
        self._session.flush()

        self._logger.info(
            f"Credited {account_type.value} {user_id}/{asset_id} +{amount} -> {record.balance}"
        )
        return record

    def debit(
        self,
        user_id: str,
        account_type: AccountType,
        asset_id: str,
        amount: Decimal,
        error_class: Type[InsufficientBalanceError] = InsufficientBalanceError,
    ) -> AccountBalance:
        """
        Remove funds.

        Raises:
            error_class: when the record is absent or short of funds;
                nothing is mutated in that case
        """
        account_type = AccountType(account_type)
        amount = positive_amount(amount)

        record = self.get_balance(user_id, account_type, asset_id, for_update=True)
        available = record.balance if record is not None else ZERO
        if record is None or record.balance < amount:
            self._logger.warning(
                f"Rejected debit {account_type.value} {user_id}/{asset_id}: "
                f"requested={amount} available={available}"
            )
            raise error_class(
                f"Insufficient balance in {account_type.value} account",
                account_type=account_type.value,
                required=amount,
                available=available,
            )

        record.balance = quantize(record.balance - amount)
        if account_type.is_trade:
            record.required_volume = quantize(record.balance * self._volume_multiplier)
        self._session.flush()

        self._logger.info(
            f"Debited {account_type.value} {user_id}/{asset_id} -{amount} -> {record.balance}"
        )
        return record

    def set_required_volume(self, record: AccountBalance, value: Decimal) -> None:
        """Overwrite a trade account's required-volume contribution."""
        if not AccountType(record.account_type).is_trade:
            raise ValidationError("Only spot and futures balances carry required volume")
        record.required_volume = quantize(value)
        self._session.flush()

    # =========================================================
    # PROTECTED HELPERS
    # =========================================================

    def _create(
        self,
        user_id: str,
        account_type: AccountType,
        asset_id: str,
        amount: Decimal,
        asset_name: str,
        trading_volume: Optional[TradingVolume],
    ) -> Optional[AccountBalance]:
        required = None
        if account_type.is_trade:
            required = trading_volume.required_volume if trading_volume is not None else ZERO

        record = AccountBalance(
            user_id=user_id,
            account_type=account_type.value,
            asset_id=asset_id,
            asset_name=asset_name,
            balance=quantize(amount),
            required_volume=required,
            trading_volume=trading_volume,
        )
        try:
            with self._session.begin_nested():
                self._session.add(record)
        except IntegrityError:
            self._logger.info(
                f"Concurrent create of {account_type.value} {user_id}/{asset_id}, re-reading"
            )
            return None
        return record
