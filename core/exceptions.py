"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the ledger.

- Provides clear exception hierarchy
- Carries a machine code and HTTP status for the API layer
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
LedgerException (base)
├── ValidationError
│   └── UnsupportedAssetError
├── InsufficientBalanceError
│   ├── InsufficientExchangeBalanceError
│   └── InsufficientTradeBalanceError
├── NotFoundError
├── AlreadyFollowingError
├── ExpiredError
├── IneligibleError
├── InvalidStateTransitionError
├── ConcurrentModificationError
└── PersistenceError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """User-facing rejection, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, operation could not be completed."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class LedgerException(Exception):
    """
    Base exception for all ledger errors.

    All exceptions carry:
    - code: stable machine-readable identifier
    - http_status: status returned by the API layer
    - severity: for alerting
    - context: for debugging
    - recoverable: whether the caller may simply retry or correct input
    """

    code: str = "ledger_error"
    http_status: int = 400
    default_severity: Severity = Severity.LOW
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses and logs."""
        return {
            "code": self.code,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Enum):
        return value.value
    return str(value)


# ============================================================
# INPUT ERRORS
# ============================================================

class ValidationError(LedgerException):
    """Missing or invalid input. Raised before any read."""

    code = "validation_error"
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        super().__init__(message, context=context, **kwargs)


class UnsupportedAssetError(ValidationError):
    """Asset may not be moved along the requested path."""

    code = "unsupported_asset"

    def __init__(self, asset_id: str, **kwargs):
        context = kwargs.pop("context", {})
        context["asset_id"] = asset_id
        super().__init__(
            f"Asset {asset_id} is not supported for this transfer",
            field="coinId",
            context=context,
            **kwargs,
        )


# ============================================================
# BALANCE ERRORS
# ============================================================

class InsufficientBalanceError(LedgerException):
    """Source account lacks funds. Raised before any mutation."""

    code = "insufficient_balance"
    http_status = 400

    def __init__(
        self,
        message: str,
        account_type: Optional[str] = None,
        required: Optional[Any] = None,
        available: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if account_type:
            context["account_type"] = account_type
        if required is not None:
            context["required"] = str(required)
        if available is not None:
            context["available"] = str(available)
        super().__init__(message, context=context, **kwargs)


class InsufficientExchangeBalanceError(InsufficientBalanceError):
    code = "insufficient_exchange_balance"


class InsufficientTradeBalanceError(InsufficientBalanceError):
    code = "insufficient_trade_balance"


# ============================================================
# LOOKUP / COPY-ORDER ERRORS
# ============================================================

class NotFoundError(LedgerException):
    """Referenced order, balance or tier does not exist."""

    code = "not_found"
    http_status = 404

    def __init__(self, resource: str, identifier: Any, **kwargs):
        context = kwargs.pop("context", {})
        context["resource"] = resource
        context["identifier"] = str(identifier)
        super().__init__(f"{resource} not found: {identifier}", context=context, **kwargs)


class AlreadyFollowingError(LedgerException):
    code = "already_following"
    http_status = 409

    def __init__(self, copy_code: str, **kwargs):
        context = kwargs.pop("context", {})
        context["copy_code"] = copy_code
        super().__init__(
            f"Order {copy_code} has already been followed",
            context=context,
            **kwargs,
        )


class ExpiredError(LedgerException):
    code = "expired"
    http_status = 410

    def __init__(self, copy_code: str, expiration: Optional[datetime] = None, **kwargs):
        context = kwargs.pop("context", {})
        context["copy_code"] = copy_code
        if expiration is not None:
            context["expiration"] = expiration.isoformat()
        super().__init__(f"Order {copy_code} has expired", context=context, **kwargs)


class IneligibleError(LedgerException):
    """VIP tier gate failure for futures copy trading."""

    code = "ineligible"
    http_status = 403


# ============================================================
# SYSTEM ERRORS
# ============================================================

class InvalidStateTransitionError(LedgerException):
    code = "invalid_state_transition"
    http_status = 409
    default_severity = Severity.MEDIUM
    default_recoverable = False

    def __init__(self, from_state: str, to_state: str, reason: str = "", **kwargs):
        context = kwargs.pop("context", {})
        context["from_state"] = from_state
        context["to_state"] = to_state
        message = f"Invalid transition {from_state} -> {to_state}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, context=context, **kwargs)


class ConcurrentModificationError(LedgerException):
    """A row changed underneath the operation (optimistic version check)."""

    code = "concurrent_modification"
    http_status = 409
    default_severity = Severity.MEDIUM


class PersistenceError(LedgerException):
    """Storage failed. Fatal for the single operation."""

    code = "persistence_error"
    http_status = 500
    default_severity = Severity.HIGH
    default_recoverable = False


__all__ = [
    "Severity",
    "LedgerException",
    "ValidationError",
    "UnsupportedAssetError",
    "InsufficientBalanceError",
    "InsufficientExchangeBalanceError",
    "InsufficientTradeBalanceError",
    "NotFoundError",
    "AlreadyFollowingError",
    "ExpiredError",
    "IneligibleError",
    "InvalidStateTransitionError",
    "ConcurrentModificationError",
    "PersistenceError",
]
