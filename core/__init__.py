"""
Core Module Package.

Shared infrastructure for every other package:
- config: Environment-driven configuration
- logging_setup: Process-wide logging
"""

from .config import (
    AppConfig,
    DatabaseConfig,
    ExchangeConfig,
    EmailConfig,
    DispatchConfig,
    ConfigurationError,
)
from .logging_setup import setup_logging


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "ExchangeConfig",
    "EmailConfig",
    "DispatchConfig",
    "ConfigurationError",
    "setup_logging",
]
