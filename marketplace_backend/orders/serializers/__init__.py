from .order import (
    OrderCancelSerializer,
    OrderCheckoutResponseSerializer,
    OrderCreateSerializer,
    OrderItemSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
)

__all__ = [
    "OrderCancelSerializer",
    "OrderCheckoutResponseSerializer",
    "OrderCreateSerializer",
    "OrderItemSerializer",
    "OrderSerializer",
    "OrderStatusUpdateSerializer",
]
