"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
All runtime configuration for the brokerage service.

- Loaded from environment variables (.env supported)
- Grouped into typed sections
- Validated once at startup

ENVIRONMENT VARIABLES:
    DATABASE_URL                   SQLAlchemy URL
    DATABASE_POOL_SIZE             Connection pool size
    DATABASE_ECHO                  Log SQL statements (true/false)
    EXCHANGE_LOT_SIZE              Minimum tradable increment
    EXCHANGE_CURRENCY              Display currency
    EXCHANGE_REQUIRE_VERIFIED      Only verified companies trade
    EXCHANGE_TRADING_FEE           Flat fee per trade
    EMAIL_API_URL                  Mail relay endpoint (unset = disabled)
    EMAIL_API_KEY                  Mail relay bearer key
    EMAIL_SENDER                   From address
    DISPATCH_MAX_WORKERS           Post-commit worker threads
    DISPATCH_INLINE                Run post-commit handlers synchronously
    LOG_LEVEL / LOG_FORMAT         Logging

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


DEFAULT_DATABASE_URL = "sqlite:///./brokerage.db"


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


# ============================================================
# ENV HELPERS
# ============================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise ConfigurationError(f"{name} must be a decimal, got {value!r}") from e


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

@dataclass
class DatabaseConfig:
    """
    Storage connection configuration.
    """

    url: str = DEFAULT_DATABASE_URL
    """SQLAlchemy database URL."""

    pool_size: int = 10
    """Number of connections to keep in pool (server databases only)."""

    max_overflow: int = 20
    """Max connections beyond pool_size."""

    pool_timeout: int = 30
    """Seconds to wait for an available connection."""

    pool_recycle: int = 1800
    """Recycle connections after N seconds."""

    echo: bool = False
    """Log SQL statements."""

    sqlite_busy_timeout_seconds: float = 30.0
    """How long a SQLite writer waits for the database lock."""

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
            pool_size=_env_int("DATABASE_POOL_SIZE", 10),
            max_overflow=_env_int("DATABASE_MAX_OVERFLOW", 20),
            pool_timeout=_env_int("DATABASE_POOL_TIMEOUT", 30),
            pool_recycle=_env_int("DATABASE_POOL_RECYCLE", 1800),
            echo=_env_bool("DATABASE_ECHO", False),
        )


# ============================================================
# EXCHANGE CONFIGURATION
# ============================================================

@dataclass
class ExchangeConfig:
    """
    Trading rules of the exchange.
    """

    lot_size: int = 100
    """Order quantities must be positive multiples of this."""

    currency: str = "Rwf"
    """Currency label used in messages and journal descriptions."""

    require_verified_company: bool = True
    """Only verified companies can be traded."""

    trading_fee: Decimal = Decimal("0")
    """Flat fee charged per executed trade."""

    def validate(self) -> None:
        if self.lot_size <= 0:
            raise ConfigurationError(f"lot_size must be positive, got {self.lot_size}")
        if self.trading_fee < 0:
            raise ConfigurationError(f"trading_fee must not be negative, got {self.trading_fee}")

    @classmethod
    def from_env(cls) -> "ExchangeConfig":
        config = cls(
            lot_size=_env_int("EXCHANGE_LOT_SIZE", 100),
            currency=os.getenv("EXCHANGE_CURRENCY") or "Rwf",
            require_verified_company=_env_bool("EXCHANGE_REQUIRE_VERIFIED", True),
            trading_fee=_env_decimal("EXCHANGE_TRADING_FEE", Decimal("0")),
        )
        config.validate()
        return config


# ============================================================
# EMAIL CONFIGURATION
# ============================================================

@dataclass
class EmailConfig:
    """
    Trade confirmation email relay.

    Email is disabled unless api_url is set.
    """

    api_url: Optional[str] = None
    api_key: Optional[str] = None
    sender: str = "no-reply@brokerage.local"
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    @classmethod
    def from_env(cls) -> "EmailConfig":
        return cls(
            api_url=os.getenv("EMAIL_API_URL") or None,
            api_key=os.getenv("EMAIL_API_KEY") or None,
            sender=os.getenv("EMAIL_SENDER") or "no-reply@brokerage.local",
        )


# ============================================================
# DISPATCH CONFIGURATION
# ============================================================

@dataclass
class DispatchConfig:
    """Post-commit side-effect dispatch."""

    max_workers: int = 2
    """Worker threads delivering notifications and emails."""

    inline: bool = False
    """Deliver synchronously in the caller's thread."""

    @classmethod
    def from_env(cls) -> "DispatchConfig":
        return cls(
            max_workers=_env_int("DISPATCH_MAX_WORKERS", 2),
            inline=_env_bool("DISPATCH_INLINE", False),
        )


# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

@dataclass
class AppConfig:
    """Complete service configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build configuration from the environment."""
        return cls(
            database=DatabaseConfig.from_env(),
            exchange=ExchangeConfig.from_env(),
            email=EmailConfig.from_env(),
            dispatch=DispatchConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )
