# orders/services/order_events.py

"""
ORDER EVENT PUBLISHING

Maps the events returned by Order transitions to in-app notifications.
Delivery is fire-and-forget: a notification failure never fails the
transition that produced the event.
"""

from __future__ import annotations

import logging

from notifications.models import Notification
from notifications.services.notification_service import send_order_notification
from orders.events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderEvent,
    OrderPaid,
    OrderRefunded,
    OrderStatusChanged,
)
from orders.models import Order

logger = logging.getLogger(__name__)

_STATUS_CHANGE_MESSAGES = {
    Order.STATUS_PROCESSING: (
        Notification.TYPE_ORDER_PROCESSING,
        "Order in progress",
        "The seller has started working on your order.",
    ),
    Order.STATUS_DELIVERED: (
        Notification.TYPE_ORDER_DELIVERED,
        "Order delivered",
        "The seller has marked your order as delivered.",
    ),
}


def _cancel_recipients(event: OrderCancelled) -> list:
    if event.cancelled_by_id == event.buyer_id:
        return [event.seller_id]
    if event.cancelled_by_id == event.seller_id:
        return [event.buyer_id]
    return [event.buyer_id, event.seller_id]


def _notifications_for(event: OrderEvent) -> list[tuple]:
    """
    (recipient_id, type, title, message) tuples for one event.
    """
    if isinstance(event, OrderCreated):
        return [
            (
                event.seller_id,
                Notification.TYPE_ORDER_CREATED,
                "New order",
                f"You have a new order {event.order_no} for {event.total_amount}.",
            )
        ]

    if isinstance(event, OrderPaid):
        return [
            (
                event.seller_id,
                Notification.TYPE_PAYMENT_RECEIVED,
                "Payment received",
                f"Order {event.order_no} has been paid.",
            ),
            (
                event.buyer_id,
                Notification.TYPE_ORDER_PAID,
                "Payment confirmed",
                f"Your payment for order {event.order_no} went through.",
            ),
        ]

    if isinstance(event, OrderStatusChanged):
        entry = _STATUS_CHANGE_MESSAGES.get(event.new_status)
        if entry is None:
            return []
        notification_type, title, message = entry
        return [(event.buyer_id, notification_type, title, message)]

    if isinstance(event, OrderCompleted):
        return [
            (
                event.buyer_id,
                Notification.TYPE_ORDER_COMPLETED,
                "Order completed",
                "Your order is complete. Please leave a review.",
            )
        ]

    if isinstance(event, OrderCancelled):
        message = "The order has been cancelled."
        if event.reason:
            message = f"The order has been cancelled: {event.reason}"
        return [
            (recipient, Notification.TYPE_ORDER_CANCELLED, "Order cancelled", message)
            for recipient in _cancel_recipients(event)
        ]

    if isinstance(event, OrderRefunded):
        return [
            (
                event.buyer_id,
                Notification.TYPE_ORDER_REFUNDED,
                "Refund issued",
                f"{event.amount} has been refunded to you.",
            )
        ]

    logger.warning("No notification mapping for event", extra={"event": type(event).__name__})
    return []


def publish_order_events(events) -> list[Notification]:
    sent = []
    for event in events:
        for recipient_id, notification_type, title, message in _notifications_for(event):
            notification = send_order_notification(
                user_id=recipient_id,
                notification_type=notification_type,
                title=title,
                message=message,
                data={"order_id": event.order_id, "event": type(event).__name__},
            )
            if notification is not None:
                sent.append(notification)
    return sent
