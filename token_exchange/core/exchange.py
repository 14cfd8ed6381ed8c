"""
Exchange facade.

This module contains the Exchange class that wires the ledger, order book,
fee schedule and event notifier together behind one serialization lock and
exposes the operations callers use.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from .assets import Asset
from .events import EventCallback, EventNotifier, ExchangeEvent
from .fees import FeeSchedule
from .ledger import Ledger
from .order import Order
from .order_book import OrderBook
from .token import NativeGateway, TokenContract
from ..utils.performance import PerformanceMonitor, measure_latency

logger = logging.getLogger(__name__)


class Exchange:
    """
    Custodial exchange with explicit order fills.

    Features:
    - Native and token deposits/withdrawals with overdraft protection
    - Orders filled individually and in full, with a fee on each fill
    - One reentrant lock serializing every mutation and read
    - Deposit, Withdraw, Order, Cancel and Trade events for observers
    """

    def __init__(
        self,
        fee_account: str,
        fee_percent: int,
        tokens: Optional[Mapping[Asset, TokenContract]] = None,
        native_gateway: Optional[NativeGateway] = None,
        custody_account: str = "exchange",
        clock: Optional[Callable[[], float]] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ):
        """
        Initialize the exchange.

        Args:
            fee_account: Account credited with every fill fee
            fee_percent: Fee rate in percent of the filled order's amount_get
            tokens: Token contracts keyed by token asset
            native_gateway: Releases withdrawn native value
            custody_account: Account under which token deposits are held
            clock: Returns the current time in epoch seconds
            performance_monitor: Records latency metrics and counters
        """
        if fee_account == custody_account:
            raise ValueError(f"Fee account must differ from custody account: {fee_account}")
        self.fees = FeeSchedule(fee_account, fee_percent)
        self.notifier = EventNotifier()
        self.ledger = Ledger(
            tokens=tokens,
            native_gateway=native_gateway,
            notifier=self.notifier,
            custody_account=custody_account,
        )
        self.order_book = OrderBook(self.ledger, self.fees, clock=clock)
        self.lock = self.ledger.lock
        self.performance_monitor = performance_monitor

        self.start_time = datetime.now(timezone.utc)

        logger.info(f"Exchange initialized: fee {fee_percent}% to {fee_account}")

    @classmethod
    def from_settings(
        cls,
        settings,
        tokens: Optional[Mapping[Asset, TokenContract]] = None,
        native_gateway: Optional[NativeGateway] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> "Exchange":
        """
        Build an exchange from a Settings instance.

        Args:
            settings: Validated settings
            tokens: Token contracts keyed by token asset
            native_gateway: Releases withdrawn native value
            performance_monitor: Used only when monitoring is enabled in settings
        """
        monitor = performance_monitor if settings.enable_performance_monitoring else None
        return cls(
            fee_account=settings.fee_account,
            fee_percent=settings.fee_percent,
            tokens=tokens,
            native_gateway=native_gateway,
            custody_account=settings.custody_account,
            performance_monitor=monitor,
        )

    @contextmanager
    def _measure(self, operation: str) -> Iterator[None]:
        if self.performance_monitor is None:
            yield
            return
        with measure_latency(self.performance_monitor, operation):
            yield
        self.performance_monitor.increment_counter(operation)

    # ---------- configuration ----------

    @property
    def fee_account(self) -> str:
        return self.fees.fee_account

    @property
    def fee_percent(self) -> int:
        return self.fees.fee_percent

    def fee_for(self, amount: int) -> int:
        """Fee a filler pays on top of ``amount``."""
        return self.fees.fee_for(amount)

    # ---------- balances ----------

    def deposit_native(self, account: str, amount: int) -> int:
        """Credit native value sent by ``account``; returns the new balance."""
        with self._measure("deposit_native"):
            return self.ledger.deposit_native(account, amount)

    def withdraw_native(self, account: str, amount: int) -> int:
        """Release native value to ``account``; returns the new balance."""
        with self._measure("withdraw_native"):
            return self.ledger.withdraw_native(account, amount)

    def deposit_token(self, asset: Asset, account: str, amount: int) -> int:
        """Pull approved tokens into custody; returns the new balance."""
        with self._measure("deposit_token"):
            return self.ledger.deposit_token(asset, account, amount)

    def withdraw_token(self, asset: Asset, account: str, amount: int) -> int:
        """Send tokens out of custody; returns the new balance."""
        with self._measure("withdraw_token"):
            return self.ledger.withdraw_token(asset, account, amount)

    def balance_of(self, asset: Asset, account: str) -> int:
        return self.ledger.balance_of(asset, account)

    # ---------- orders ----------

    def make_order(
        self,
        maker: str,
        token_get: Asset,
        amount_get: int,
        token_give: Asset,
        amount_give: int,
    ) -> int:
        """Record an order; returns its id."""
        with self._measure("make_order"):
            return self.order_book.make_order(maker, token_get, amount_get, token_give, amount_give)

    def fill_order(self, filler: str, order_id: int) -> Order:
        """Fill an open order in full; returns the filled order."""
        with self._measure("fill_order"):
            return self.order_book.fill_order(filler, order_id)

    def cancel_order(self, caller: str, order_id: int) -> Order:
        """Cancel an open order made by ``caller``; returns the cancelled order."""
        with self._measure("cancel_order"):
            return self.order_book.cancel_order(caller, order_id)

    @property
    def order_count(self) -> int:
        return self.order_book.order_count

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.order_book.get_order(order_id)

    def order_filled(self, order_id: int) -> bool:
        return self.order_book.order_filled(order_id)

    def order_cancelled(self, order_id: int) -> bool:
        return self.order_book.order_cancelled(order_id)

    def open_orders(self, maker: Optional[str] = None) -> List[Order]:
        return self.order_book.open_orders(maker)

    # ---------- events ----------

    def add_event_callback(self, callback: EventCallback) -> None:
        """Add callback for every committed event."""
        self.notifier.add_callback(callback)

    @property
    def events(self) -> List[ExchangeEvent]:
        return self.notifier.events

    # ---------- integrity and statistics ----------

    def verify_conservation(self, strict: bool = True) -> None:
        """
        Check every asset's balances against custody.

        Raises:
            ConservationError: If any asset is not fully backed
        """
        with self.lock:
            for asset in self.ledger.assets():
                self.ledger.verify_conservation(asset, strict=strict)

    def get_statistics(self) -> Dict[str, Any]:
        """Get exchange statistics."""
        uptime = datetime.now(timezone.utc) - self.start_time

        with self.lock:
            stats: Dict[str, Any] = {
                "uptime_seconds": uptime.total_seconds(),
                "fee_account": self.fee_account,
                "fee_percent": self.fee_percent,
                "events_emitted": len(self.notifier),
                "balances": {
                    str(asset): str(self.ledger.total_balance(asset))
                    for asset in sorted(self.ledger.assets(), key=str)
                },
            }
            stats.update(self.order_book.get_statistics())

        if self.performance_monitor is not None:
            stats["performance"] = self.performance_monitor.get_summary()
        return stats
