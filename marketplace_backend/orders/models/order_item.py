# orders/models/order_item.py

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class OrderItem(models.Model):
    """
    Immutable line snapshot.

    Title, description and price are copied from the Service at checkout so
    later catalog edits never rewrite order history. `service` is kept only as
    a back-reference and may become NULL if the service is removed.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )

    service = models.ForeignKey(
        "catalog.Service",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_items",
    )

    service_title = models.CharField(max_length=200)
    service_description = models.TextField(blank=True, default="")

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("OrderItem is an immutable snapshot and cannot be modified.")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.service_title} x{self.quantity} @ {self.unit_price}"
