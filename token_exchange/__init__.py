"""
Custodial token exchange.

Holds per-account native and token balances and settles explicitly filled
limit orders between accounts, charging a fee on every fill.
"""

from .core import Asset, NATIVE, Exchange, Order, OrderStatus

__version__ = "1.0.0"

__all__ = [
    "Asset",
    "NATIVE",
    "Exchange",
    "Order",
    "OrderStatus",
]
