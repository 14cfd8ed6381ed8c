"""
Configuration module for the exchange.

This module provides configuration management and settings
for the custodial token exchange.
"""

from .settings import Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
]
