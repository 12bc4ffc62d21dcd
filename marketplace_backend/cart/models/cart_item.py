# cart/models/cart_item.py

"""
CART ITEM MODEL

Rules:
- One line per (buyer, service) (DB constraint).
- Quantity must be > 0.
- No price is stored here: the live Service.price is read at checkout
  and snapshotted into OrderItem.
"""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class CartItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cart_items",
    )

    service = models.ForeignKey(
        "catalog.Service",
        on_delete=models.CASCADE,
        related_name="cart_items",
    )

    quantity = models.PositiveIntegerField(default=1, help_text="Must be greater than zero")

    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["added_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "service"],
                name="unique_service_per_cart",
            )
        ]

    def clean(self):
        if self.quantity is None or int(self.quantity) <= 0:
            raise ValidationError({"quantity": "Quantity must be greater than zero"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.user_id} | {self.service_id} x{self.quantity}"
