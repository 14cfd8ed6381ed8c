"""
Exchange events and the notifier that publishes them.

Each mutating operation produces exactly one event carrying the full
parameter set and the resulting balance or timestamp. Events are appended to
an in-memory log and pushed to subscribed callbacks (audit trail, indexers).
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List

from .assets import Asset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeEvent:
    """Base class for all exchange events."""

    name: ClassVar[str] = "Event"

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict(), indent=2)


@dataclass(frozen=True)
class DepositEvent(ExchangeEvent):
    """Value moved into custody and credited to an account."""

    name: ClassVar[str] = "Deposit"

    asset: Asset
    account: str
    amount: int
    balance: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "asset": self.asset.to_address(),
            "account": self.account,
            "amount": str(self.amount),
            "balance": str(self.balance),
        }


@dataclass(frozen=True)
class WithdrawEvent(ExchangeEvent):
    """Value debited from an account and released from custody."""

    name: ClassVar[str] = "Withdraw"

    asset: Asset
    account: str
    amount: int
    balance: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "asset": self.asset.to_address(),
            "account": self.account,
            "amount": str(self.amount),
            "balance": str(self.balance),
        }


@dataclass(frozen=True)
class OrderEvent(ExchangeEvent):
    """A new order was recorded."""

    name: ClassVar[str] = "Order"

    order_id: int
    maker: str
    token_get: Asset
    amount_get: int
    token_give: Asset
    amount_give: int
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "order_id": self.order_id,
            "maker": self.maker,
            "token_get": self.token_get.to_address(),
            "amount_get": str(self.amount_get),
            "token_give": self.token_give.to_address(),
            "amount_give": str(self.amount_give),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CancelEvent(OrderEvent):
    """An open order was cancelled by its maker; timestamp is the cancel time."""

    name: ClassVar[str] = "Cancel"


@dataclass(frozen=True)
class TradeEvent(ExchangeEvent):
    """An order was filled; timestamp is the fill time."""

    name: ClassVar[str] = "Trade"

    order_id: int
    maker: str
    token_get: Asset
    amount_get: int
    token_give: Asset
    amount_give: int
    filler: str
    fee: int
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "order_id": self.order_id,
            "maker": self.maker,
            "token_get": self.token_get.to_address(),
            "amount_get": str(self.amount_get),
            "token_give": self.token_give.to_address(),
            "amount_give": str(self.amount_give),
            "filler": self.filler,
            "fee": str(self.fee),
            "timestamp": self.timestamp,
        }


EventCallback = Callable[[ExchangeEvent], None]


class EventNotifier:
    """
    Publishes exchange events.

    Emission is best-effort: a failing subscriber is logged and skipped, it
    never undoes the state change that produced the event.
    """

    def __init__(self):
        self._events: List[ExchangeEvent] = []
        self._callbacks: List[EventCallback] = []
        self._lock = threading.Lock()

    def add_callback(self, callback: EventCallback) -> None:
        """Subscribe a callback to every future event."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: EventCallback) -> bool:
        with self._lock:
            try:
                self._callbacks.remove(callback)
                return True
            except ValueError:
                return False

    def emit(self, event: ExchangeEvent) -> None:
        """
        Record an event and notify subscribers.

        Args:
            event: The committed event to publish
        """
        with self._lock:
            self._events.append(event)
            callbacks = list(self._callbacks)

        logger.debug(f"Emitting {event.name} event: {event.to_dict()}")
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in {event.name} event callback: {str(e)}")

    @property
    def events(self) -> List[ExchangeEvent]:
        """All events emitted so far, oldest first."""
        with self._lock:
            return list(self._events)

    def events_of(self, name: str) -> List[ExchangeEvent]:
        """Events with the given name, e.g. ``"Trade"``."""
        with self._lock:
            return [e for e in self._events if e.name == name]

    @property
    def last_event(self):
        with self._lock:
            return self._events[-1] if self._events else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
