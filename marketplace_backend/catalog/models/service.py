# catalog/models/service.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F


class Service(models.Model):
    """
    A sellable service listed by a seller.

    Orders never reference the live price: OrderItem snapshots title,
    description and price at checkout time.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="services",
    )

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )

    is_active = models.BooleanField(default=True)

    order_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "is_active"], name="service_seller_active_idx"),
        ]

    def increment_order_count(self, by: int = 1):
        Service.objects.filter(pk=self.pk).update(order_count=F("order_count") + by)

    def __str__(self):
        return f"{self.title} | {self.price}"
