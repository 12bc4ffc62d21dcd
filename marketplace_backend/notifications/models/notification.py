# notifications/models/notification.py

import uuid

from django.conf import settings
from django.db import models


class Notification(models.Model):
    """
    In-app notification shown in the Mini App inbox.
    Push delivery (bot message / websocket) is handled elsewhere.
    """

    TYPE_ORDER_CREATED = "order_created"
    TYPE_ORDER_PAID = "order_paid"
    TYPE_ORDER_PROCESSING = "order_processing"
    TYPE_ORDER_DELIVERED = "order_delivered"
    TYPE_ORDER_COMPLETED = "order_completed"
    TYPE_ORDER_CANCELLED = "order_cancelled"
    TYPE_ORDER_REFUNDED = "order_refunded"
    TYPE_PAYMENT_RECEIVED = "payment_received"

    TYPE_CHOICES = [
        (TYPE_ORDER_CREATED, "Order created"),
        (TYPE_ORDER_PAID, "Order paid"),
        (TYPE_ORDER_PROCESSING, "Order processing"),
        (TYPE_ORDER_DELIVERED, "Order delivered"),
        (TYPE_ORDER_COMPLETED, "Order completed"),
        (TYPE_ORDER_CANCELLED, "Order cancelled"),
        (TYPE_ORDER_REFUNDED, "Order refunded"),
        (TYPE_PAYMENT_RECEIVED, "Payment received"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )

    type = models.CharField(max_length=32, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField(blank=True, default="")
    data = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="notification_user_read_idx"),
        ]

    def __str__(self):
        return f"{self.user_id} | {self.type} | {self.title}"
