"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All runtime configuration for the ledger service.

Values are read from environment variables. A .env file in
the working directory is loaded first via python-dotenv.

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

@dataclass
class DatabaseConfig:
    """
    Database connection configuration.
    """

    url: str = "sqlite:///./ledger.db"
    """SQLAlchemy database URL."""

    pool_size: int = 5
    """Connection pool size (ignored for SQLite)."""

    max_overflow: int = 10
    """Extra connections allowed beyond pool_size."""

    echo: bool = False
    """Log every SQL statement."""

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            url=os.getenv("DATABASE_URL", cls.url),
            pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
            echo=_env_bool("DATABASE_ECHO", "false"),
        )


# ============================================================
# FEE POLICY CONFIGURATION
# ============================================================

@dataclass
class FeePolicyConfig:
    """
    Withdrawal fee policy for trade -> exchange transfers.

    The penalty applies while the user's trading volume is below
    the required volume.
    """

    penalty_rate: Decimal = Decimal("0.20")
    """Fee rate charged when required volume is not met."""

    withdrawal_rate: Decimal = Decimal("0.00")
    """Fee rate charged when required volume is met."""

    volume_multiplier: Decimal = Decimal("2")
    """Required volume created per unit moved into a trade account."""

    @classmethod
    def from_env(cls) -> "FeePolicyConfig":
        return cls(
            penalty_rate=Decimal(os.getenv("PENALTY_FEE_RATE", "0.20")),
            withdrawal_rate=Decimal(os.getenv("WITHDRAWAL_FEE_RATE", "0.00")),
            volume_multiplier=Decimal(os.getenv("VOLUME_MULTIPLIER", "2")),
        )


# ============================================================
# SCHEDULER CONFIGURATION
# ============================================================

@dataclass
class SchedulerConfig:
    """
    Periodic sweep configuration (settlement + volume projection).
    """

    enabled: bool = True
    """Start the background sweep with the API process."""

    interval_seconds: float = 60.0
    """Seconds between sweeps."""

    max_settlement_attempts: int = 5
    """Failed settlement attempts before an order is marked failed."""

    batch_size: int = 100
    """Maximum orders settled per sweep."""

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        return cls(
            enabled=_env_bool("SCHEDULER_ENABLED", "true"),
            interval_seconds=float(os.getenv("SETTLEMENT_INTERVAL_SECONDS", "60")),
            max_settlement_attempts=int(os.getenv("MAX_SETTLEMENT_ATTEMPTS", "5")),
            batch_size=int(os.getenv("SETTLEMENT_BATCH_SIZE", "100")),
        )


# ============================================================
# NOTIFICATION CONFIGURATION
# ============================================================

@dataclass
class NotificationConfig:
    """
    Telegram notification channel configuration.

    The channel is disabled when either value is missing.
    """

    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    timeout_seconds: float = 10.0

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        return cls(
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),
            timeout_seconds=float(os.getenv("TELEGRAM_TIMEOUT_SECONDS", "10")),
        )


# ============================================================
# API CONFIGURATION
# ============================================================

@dataclass
class ApiConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> "ApiConfig":
        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class LedgerConfig:
    """
    Master configuration for the ledger service.
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    fees: FeePolicyConfig = field(default_factory=FeePolicyConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Load configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            fees=FeePolicyConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
            notifications=NotificationConfig.from_env(),
            api=ApiConfig.from_env(),
        )

    @classmethod
    def for_testing(cls, database_url: str = "sqlite:///:memory:") -> "LedgerConfig":
        """Configuration for tests: no background sweep, no Telegram."""
        return cls(
            database=DatabaseConfig(url=database_url),
            scheduler=SchedulerConfig(enabled=False, interval_seconds=1.0),
            notifications=NotificationConfig(),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not (Decimal("0") <= self.fees.penalty_rate <= Decimal("1")):
            errors.append("penalty_rate must be between 0 and 1")

        if not (Decimal("0") <= self.fees.withdrawal_rate <= Decimal("1")):
            errors.append("withdrawal_rate must be between 0 and 1")

        if self.fees.volume_multiplier < 0:
            errors.append("volume_multiplier must not be negative")

        if self.scheduler.interval_seconds <= 0:
            errors.append("interval_seconds must be positive")

        if self.scheduler.max_settlement_attempts < 1:
            errors.append("max_settlement_attempts must be at least 1")

        if self.scheduler.batch_size < 1:
            errors.append("batch_size must be at least 1")

        return errors
