"""
Core exchange components.

This module contains the ledger, order book, fee schedule and event
notifier that make up the custodial exchange.
"""

from .assets import Asset, AssetKind, NATIVE, NATIVE_ADDRESS
from .errors import (
    ExchangeError,
    InsufficientBalance,
    InvalidAsset,
    TransferNotApproved,
    OrderNotFound,
    OrderAlreadySettled,
    Unauthorized,
    ArithmeticOverflow,
    ConservationError,
)
from .events import (
    EventNotifier,
    ExchangeEvent,
    DepositEvent,
    WithdrawEvent,
    OrderEvent,
    CancelEvent,
    TradeEvent,
)
from .fees import FeeSchedule, FEE_SCALE
from .ledger import Ledger
from .order import Order, OrderStatus
from .order_book import OrderBook
from .token import TokenContract, NativeGateway, InMemoryToken, InMemoryNativeGateway
from .exchange import Exchange

__all__ = [
    "Asset",
    "AssetKind",
    "NATIVE",
    "NATIVE_ADDRESS",
    "ExchangeError",
    "InsufficientBalance",
    "InvalidAsset",
    "TransferNotApproved",
    "OrderNotFound",
    "OrderAlreadySettled",
    "Unauthorized",
    "ArithmeticOverflow",
    "ConservationError",
    "EventNotifier",
    "ExchangeEvent",
    "DepositEvent",
    "WithdrawEvent",
    "OrderEvent",
    "CancelEvent",
    "TradeEvent",
    "FeeSchedule",
    "FEE_SCALE",
    "Ledger",
    "Order",
    "OrderStatus",
    "OrderBook",
    "TokenContract",
    "NativeGateway",
    "InMemoryToken",
    "InMemoryNativeGateway",
    "Exchange",
]
