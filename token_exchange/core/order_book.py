"""
Order book with explicit, all-or-nothing fills.

Orders are not matched automatically. Anyone may fill an open order by id,
paying the maker's asking amount plus the exchange fee, or the maker may
cancel it. Settlement runs inside a single ledger transaction so a failing
fill leaves every balance and the order itself untouched.
"""

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .amounts import checked_add, validate_amount
from .assets import Asset
from .errors import (
    ExchangeError,
    InsufficientBalance,
    OrderAlreadySettled,
    OrderNotFound,
    Unauthorized,
)
from .events import CancelEvent, OrderEvent, TradeEvent
from .fees import FeeSchedule
from .ledger import Ledger, validate_account
from .order import Order, OrderStatus

logger = logging.getLogger(__name__)


class OrderBook:
    """
    Order lifecycle state machine.

    Ids start at 1 and increase by one per order; orders are kept forever so
    their history can be audited. The book shares the ledger's lock.
    """

    def __init__(self, ledger: Ledger, fees: FeeSchedule, clock: Optional[Callable[[], float]] = None):
        """
        Initialize the order book.

        Args:
            ledger: Ledger holding every balance the book settles against
            fees: Fee schedule applied to each fill
            clock: Returns the current time in epoch seconds
        """
        self.ledger = ledger
        self.fees = fees
        self._lock = ledger.lock
        self._clock = clock or time.time

        self._orders: Dict[int, Order] = {}
        self._order_count = 0
        self._last_timestamp = 0

        # Statistics
        self.total_filled = 0
        self.total_cancelled = 0

        logger.info(f"Initialized order book, fee {fees.fee_percent}% to {fees.fee_account}")

    def _now(self) -> int:
        # Timestamps never go backwards and are never zero
        ts = max(int(self._clock()), self._last_timestamp, 1)
        self._last_timestamp = ts
        return ts

    def _lookup(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _replace_order(self, order: Order) -> None:
        previous = self._orders[order.order_id]
        self._orders[order.order_id] = order
        self.ledger.record_undo(lambda: self._orders.__setitem__(previous.order_id, previous))

    def make_order(
        self,
        maker: str,
        token_get: Asset,
        amount_get: int,
        token_give: Asset,
        amount_give: int,
    ) -> int:
        """
        Record a new open order.

        The maker's solvency is not checked here; it is checked when the
        order is filled.

        Returns:
            The new order id
        """
        validate_account(maker)
        if not isinstance(token_get, Asset) or not isinstance(token_give, Asset):
            raise ValueError("token_get and token_give must be Asset instances")
        validate_amount(amount_get, "amount_get")
        validate_amount(amount_give, "amount_give")

        with self.ledger.atomic():
            order_id = self._order_count + 1
            order = Order(
                order_id=order_id,
                maker=maker,
                token_get=token_get,
                amount_get=amount_get,
                token_give=token_give,
                amount_give=amount_give,
                timestamp=self._now(),
            )
            self._orders[order_id] = order
            self._order_count = order_id
            self.ledger.record_undo(lambda: self._forget(order_id))

            self.ledger.publish(OrderEvent(
                order_id, maker, token_get, amount_get, token_give, amount_give, order.timestamp,
            ))

        logger.info(f"Order {order_id} made by {maker}: get {amount_get} {token_get} for {amount_give} {token_give}")
        return order_id

    def _forget(self, order_id: int) -> None:
        self._orders.pop(order_id, None)
        self._order_count = order_id - 1

    def cancel_order(self, caller: str, order_id: int) -> Order:
        """
        Cancel an open order on behalf of its maker.

        Returns:
            A copy of the cancelled order

        Raises:
            OrderNotFound: If the id was never issued
            OrderAlreadySettled: If the order is filled or cancelled
            Unauthorized: If ``caller`` is not the maker of an open order
        """
        try:
            with self.ledger.atomic():
                order = self._lookup(order_id)
                if order.status.is_terminal:
                    raise OrderAlreadySettled(order_id, order.status)
                if caller != order.maker:
                    raise Unauthorized(f"{caller} cannot cancel order {order_id} made by {order.maker}")

                ts = self._now()
                cancelled = replace(order, status=OrderStatus.CANCELLED, settled_at=ts)
                self._replace_order(cancelled)
                self.total_cancelled += 1
                self.ledger.record_undo(self._uncount_cancel)

                self.ledger.publish(CancelEvent(
                    order_id, order.maker, order.token_get, order.amount_get,
                    order.token_give, order.amount_give, ts,
                ))
        except ExchangeError as e:
            logger.warning(f"Failed to cancel order {order_id}: {str(e)}")
            raise

        logger.info(f"Cancelled order {order_id}")
        return replace(cancelled)

    def _uncount_cancel(self) -> None:
        self.total_cancelled -= 1

    def _uncount_fill(self) -> None:
        self.total_filled -= 1

    def fill_order(self, filler: str, order_id: int) -> Order:
        """
        Fill an open order in full.

        The filler pays ``amount_get`` of ``token_get`` to the maker plus the
        fee to the fee account, and receives ``amount_give`` of
        ``token_give`` from the maker.

        Returns:
            A copy of the filled order

        Raises:
            OrderNotFound: If the id was never issued
            OrderAlreadySettled: If the order is filled or cancelled
            InsufficientBalance: If the filler or the maker cannot cover
                their side; the order stays open
        """
        validate_account(filler)

        try:
            with self.ledger.atomic():
                order = self._lookup(order_id)
                if order.status.is_terminal:
                    raise OrderAlreadySettled(order_id, order.status)

                fee = self.fees.fee_for(order.amount_get)
                total_cost = checked_add(order.amount_get, fee)
                available = self.ledger.balance_of(order.token_get, filler)
                if available < total_cost:
                    raise InsufficientBalance(order.token_get, filler, total_cost, available)

                self._settle(order, filler, fee)

                ts = self._now()
                filled = replace(order, status=OrderStatus.FILLED, filler=filler, fee=fee, settled_at=ts)
                self._replace_order(filled)
                self.total_filled += 1
                self.ledger.record_undo(self._uncount_fill)

                self.ledger.publish(TradeEvent(
                    order_id, order.maker, order.token_get, order.amount_get,
                    order.token_give, order.amount_give, filler, fee, ts,
                ))
        except ExchangeError as e:
            logger.warning(f"Failed to fill order {order_id} for {filler}: {str(e)}")
            raise

        logger.info(f"Filled order {order_id} for {filler}, fee {fee} {order.token_get}")
        return replace(filled)

    def _settle(self, order: Order, filler: str, fee: int) -> None:
        # Lock and transaction held by the caller
        self.ledger.transfer_internal(order.token_get, filler, order.maker, order.amount_get)
        self.ledger.transfer_internal(order.token_get, filler, self.fees.fee_account, fee)
        self.ledger.transfer_internal(order.token_give, order.maker, filler, order.amount_give)

    # ---------- reads ----------

    @property
    def order_count(self) -> int:
        """Number of orders ever created."""
        with self._lock:
            return self._order_count

    def get_order(self, order_id: int) -> Optional[Order]:
        """Get a copy of an order by id, or None if it was never issued."""
        with self._lock:
            order = self._orders.get(order_id)
            return replace(order) if order is not None else None

    def order_filled(self, order_id: int) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            return order is not None and order.is_filled

    def order_cancelled(self, order_id: int) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            return order is not None and order.is_cancelled

    def open_orders(self, maker: Optional[str] = None) -> List[Order]:
        """
        Get copies of all open orders, oldest first.

        Args:
            maker: Only return orders made by this account
        """
        with self._lock:
            return [
                replace(order)
                for order in self._orders.values()
                if order.is_open and (maker is None or order.maker == maker)
            ]

    def get_statistics(self) -> Dict[str, int]:
        """Get order book statistics."""
        with self._lock:
            return {
                "total_orders": self._order_count,
                "open_orders": sum(1 for o in self._orders.values() if o.is_open),
                "filled_orders": self.total_filled,
                "cancelled_orders": self.total_cancelled,
            }
