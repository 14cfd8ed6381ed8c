"""
Configuration settings for the exchange.

This module provides centralized configuration management
with environment variable support and validation.
"""

import os
from typing import Any, Dict, Optional

from ..core.fees import FEE_SCALE


class Settings:
    """
    Configuration settings for the exchange.

    Fee settings are read once; an Exchange built from them keeps its fee
    configuration fixed for its whole lifetime.
    """

    def __init__(self):
        """Initialize settings from environment variables."""
        # Fee configuration
        self.fee_account = os.getenv("EXCHANGE_FEE_ACCOUNT", "fee-account")
        self.fee_percent = _int_env("EXCHANGE_FEE_PERCENT", "10")
        self.custody_account = os.getenv("EXCHANGE_CUSTODY_ACCOUNT", "exchange")

        # Logging configuration
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_file = os.getenv("LOG_FILE", "logs/exchange.log")
        self.enable_audit_log = os.getenv("ENABLE_AUDIT_LOG", "true").lower() == "true"
        self.audit_log_file = os.getenv("AUDIT_LOG_FILE", "logs/audit.log")

        # Performance monitoring
        self.enable_performance_monitoring = os.getenv("ENABLE_PERFORMANCE_MONITORING", "true").lower() == "true"

        # Debug mode
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return {
            "fee_account": self.fee_account,
            "fee_percent": self.fee_percent,
            "custody_account": self.custody_account,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "enable_audit_log": self.enable_audit_log,
            "audit_log_file": self.audit_log_file,
            "enable_performance_monitoring": self.enable_performance_monitoring,
            "debug": self.debug,
        }

    def validate(self) -> None:
        """Validate configuration settings."""
        errors = []

        if not self.fee_account:
            errors.append("Fee account cannot be empty")

        if self.fee_percent is None:
            errors.append("Fee percent must be an integer")
        elif not 0 <= self.fee_percent <= FEE_SCALE:
            errors.append(f"Fee percent must be between 0 and {FEE_SCALE}: {self.fee_percent}")

        if not self.custody_account:
            errors.append("Custody account cannot be empty")

        if self.custody_account and self.custody_account == self.fee_account:
            errors.append(f"Custody account must differ from fee account: {self.custody_account}")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Invalid log level: {self.log_level}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


def _int_env(name: str, default: str) -> Optional[int]:
    # Invalid values surface through validate() rather than at read time
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return None


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.validate()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment variables.

    Returns:
        New settings instance
    """
    global _settings
    _settings = Settings()
    _settings.validate()
    return _settings
