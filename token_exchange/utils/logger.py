"""
Logging configuration for the exchange.

This module provides the root logging setup, a structured logger for
exchange operations and a dedicated audit trail fed by exchange events.
"""

import logging
import logging.handlers
import os
import sys
from typing import Optional

from ..core.events import (
    CancelEvent,
    DepositEvent,
    EventNotifier,
    ExchangeEvent,
    OrderEvent,
    TradeEvent,
    WithdrawEvent,
)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Set up logging configuration for the exchange.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        max_file_size: Maximum log file size in bytes
        backup_count: Number of backup files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    simple_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        _ensure_log_dir(log_file)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Level: {level}, File: {log_file or 'Console only'}")


def _ensure_log_dir(log_file: str) -> None:
    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class ExchangeLogger:
    """
    Structured logger for exchange operations.

    Writes one pipe-delimited line per event on a per-concern child logger.
    """

    def __init__(self, name: str = "exchange"):
        self.balance_logger = logging.getLogger(f"{name}.balances")
        self.order_logger = logging.getLogger(f"{name}.orders")
        self.trade_logger = logging.getLogger(f"{name}.trades")

    def log_deposit(self, asset: str, account: str, amount: str, balance: str) -> None:
        self.balance_logger.info(f"DEPOSIT|{asset}|{account}|{amount}|{balance}")

    def log_withdrawal(self, asset: str, account: str, amount: str, balance: str) -> None:
        self.balance_logger.info(f"WITHDRAW|{asset}|{account}|{amount}|{balance}")

    def log_order(self, order_id: int, maker: str, token_get: str, amount_get: str,
                  token_give: str, amount_give: str) -> None:
        self.order_logger.info(
            f"ORDER_MAKE|{order_id}|{maker}|{token_get}|{amount_get}|{token_give}|{amount_give}"
        )

    def log_cancel(self, order_id: int, maker: str) -> None:
        self.order_logger.info(f"ORDER_CANCEL|{order_id}|{maker}")

    def log_trade(self, order_id: int, maker: str, filler: str, fee: str) -> None:
        self.trade_logger.info(f"TRADE_EXEC|{order_id}|{maker}|{filler}|{fee}")

    def on_event(self, event: ExchangeEvent) -> None:
        """Event callback that routes each event to its structured line."""
        data = event.to_dict()
        if isinstance(event, (DepositEvent, WithdrawEvent)):
            log = self.log_deposit if isinstance(event, DepositEvent) else self.log_withdrawal
            log(data["asset"], data["account"], data["amount"], data["balance"])
        elif isinstance(event, CancelEvent):
            self.log_cancel(event.order_id, event.maker)
        elif isinstance(event, OrderEvent):
            self.log_order(event.order_id, event.maker, data["token_get"], data["amount_get"],
                           data["token_give"], data["amount_give"])
        elif isinstance(event, TradeEvent):
            self.log_trade(event.order_id, event.maker, event.filler, data["fee"])


def create_audit_logger(log_file: str = "logs/audit.log") -> logging.Logger:
    """
    Create a dedicated audit logger for compliance.

    Args:
        log_file: Path to audit log file

    Returns:
        Audit logger instance
    """
    _ensure_log_dir(log_file)

    audit_logger = logging.getLogger("audit")
    audit_logger.setLevel(logging.INFO)

    # Prevent propagation to root logger
    audit_logger.propagate = False

    audit_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=50 * 1024 * 1024,  # 50MB
        backupCount=10
    )

    audit_formatter = logging.Formatter(
        '%(asctime)s|%(levelname)s|%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    audit_handler.setFormatter(audit_formatter)

    audit_logger.addHandler(audit_handler)

    return audit_logger


def log_event_audit(audit_logger: logging.Logger, event: ExchangeEvent) -> None:
    """
    Log an exchange event to the audit trail.

    Args:
        audit_logger: Audit logger instance
        event: Committed exchange event
    """
    fields = "|".join(f"{key.upper()}:{value}" for key, value in event.to_dict().items() if key != "event")
    audit_logger.info(f"{event.name.upper()}|{fields}")


def attach_audit_trail(notifier: EventNotifier, audit_logger: logging.Logger) -> None:
    """Subscribe ``audit_logger`` to every event published by ``notifier``."""
    notifier.add_callback(lambda event: log_event_audit(audit_logger, event))
