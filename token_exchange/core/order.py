"""
Order record for the exchange order book.

An order states what its maker wants to receive (``token_get``/``amount_get``)
and what the maker offers in exchange (``token_give``/``amount_give``). It is
settled at most once, either by a fill or by a cancel.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .amounts import validate_amount
from .assets import Asset


class OrderStatus(Enum):
    """
    Order status tracking throughout the lifecycle.

    - OPEN: Order recorded and available to fill
    - FILLED: Order executed in full (terminal)
    - CANCELLED: Order withdrawn by its maker (terminal)
    """
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.OPEN


@dataclass
class Order:
    """
    A standing limit order between two assets.

    Orders are owned by the OrderBook; callers only ever see copies.
    """

    order_id: int
    maker: str
    token_get: Asset
    amount_get: int
    token_give: Asset
    amount_give: int
    timestamp: int
    status: OrderStatus = OrderStatus.OPEN

    # Settlement details, set once the order leaves OPEN
    filler: Optional[str] = None
    fee: int = 0
    settled_at: Optional[int] = None

    def __post_init__(self):
        """Validate order after initialization."""
        self._validate()

    def _validate(self) -> None:
        """
        Validate order parameters.

        Raises:
            ValueError: If order parameters are invalid
        """
        if isinstance(self.order_id, bool) or not isinstance(self.order_id, int) or self.order_id <= 0:
            raise ValueError(f"Order id must be a positive integer, got: {self.order_id!r}")

        if not self.maker or not isinstance(self.maker, str):
            raise ValueError("Maker cannot be empty")

        if not isinstance(self.token_get, Asset) or not isinstance(self.token_give, Asset):
            raise ValueError("token_get and token_give must be Asset instances")

        validate_amount(self.amount_get, "amount_get")
        validate_amount(self.amount_give, "amount_give")

        if self.timestamp <= 0:
            raise ValueError(f"Timestamp must be positive, got: {self.timestamp}")

    @property
    def is_open(self) -> bool:
        return self.status == OrderStatus.OPEN

    @property
    def is_filled(self) -> bool:
        return self.status == OrderStatus.FILLED

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        """Convert order to dictionary for serialization."""
        return {
            "order_id": self.order_id,
            "maker": self.maker,
            "token_get": self.token_get.to_address(),
            "amount_get": str(self.amount_get),
            "token_give": self.token_give.to_address(),
            "amount_give": str(self.amount_give),
            "timestamp": self.timestamp,
            "status": self.status.value,
            "filler": self.filler,
            "fee": str(self.fee),
            "settled_at": self.settled_at,
        }

    def to_json(self) -> str:
        """Convert order to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        """Create order from dictionary."""
        return cls(
            order_id=int(data["order_id"]),
            maker=data["maker"],
            token_get=Asset.from_address(data["token_get"]),
            amount_get=int(data["amount_get"]),
            token_give=Asset.from_address(data["token_give"]),
            amount_give=int(data["amount_give"]),
            timestamp=int(data["timestamp"]),
            status=OrderStatus(data.get("status", "open")),
            filler=data.get("filler"),
            fee=int(data.get("fee", "0")),
            settled_at=data.get("settled_at"),
        )

    def __repr__(self) -> str:
        return (
            f"Order(id={self.order_id}, maker={self.maker}, "
            f"get {self.amount_get} {self.token_get}, give {self.amount_give} {self.token_give}, "
            f"{self.status.value})"
        )
