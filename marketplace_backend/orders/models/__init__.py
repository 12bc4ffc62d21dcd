# orders/models/__init__.py

"""
ORDERS MODELS PACKAGE EXPORTS
"""

from .order import InvalidOrderTransitionError, Order
from .order_item import OrderItem

__all__ = [
    "Order",
    "OrderItem",
    "InvalidOrderTransitionError",
]
