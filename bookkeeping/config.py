"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class BookkeepingConfig(BaseSettings):
    """Bookkeeping core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BOOKKEEPING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = "memory://"  # memory://, sqlite://, sqlite:///path/to/books.db

    # Posting rules
    posting_currency: str = "USD"  # Amounts are pre-converted to this currency
    balance_tolerance: str = "0.01"  # Max |debits - credits| accepted per transaction

    # Chart of accounts
    seed_default_chart: bool = False

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = BookkeepingConfig()


def get_config() -> BookkeepingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BookkeepingConfig:
    """Reload configuration from environment"""
    global config
    config = BookkeepingConfig()
    return config
