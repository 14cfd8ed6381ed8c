"""
Utility modules for the exchange.

This module provides logging, audit trail and performance monitoring
helpers.
"""

from .logger import setup_logging, get_logger, ExchangeLogger, create_audit_logger, attach_audit_trail
from .performance import PerformanceMonitor, get_performance_monitor

__all__ = [
    "setup_logging",
    "get_logger",
    "ExchangeLogger",
    "create_audit_logger",
    "attach_audit_trail",
    "PerformanceMonitor",
    "get_performance_monitor",
]
