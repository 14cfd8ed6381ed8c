"""
Exception hierarchy for the exchange.

Every failing public operation raises one of these and leaves balances and
orders exactly as they were before the call.
"""


class ExchangeError(Exception):
    """Base class for recoverable exchange errors."""


class InsufficientBalance(ExchangeError):
    """A debit exceeds the available balance."""

    def __init__(self, asset, account, requested: int, available: int):
        self.asset = asset
        self.account = account
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {asset} balance for {account}: "
            f"requested {requested}, available {available}"
        )


class InvalidAsset(ExchangeError):
    """Native asset used on the token path, or an unknown token."""


class TransferNotApproved(ExchangeError):
    """The token collaborator rejected a transfer."""


class OrderNotFound(ExchangeError):
    """The order id was never issued."""

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class OrderAlreadySettled(ExchangeError):
    """Fill or cancel attempted on an order that is no longer open."""

    def __init__(self, order_id, status):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is already {status.value}")


class Unauthorized(ExchangeError):
    """Caller is not allowed to act on this order."""


class ArithmeticOverflow(ExchangeError):
    """An amount, balance or fee exceeds the representable range."""


class ConservationError(RuntimeError):
    """
    Internal balances no longer match custodied value.

    This indicates a defect in the exchange, not a caller error.
    """
