# promotions/models/promo_code.py

"""
PROMO CODE MODEL

Discount rule applied at checkout, independent of any order.

RULES:
- code is stored uppercased and is unique
- is_valid(): active AND under the global usage cap AND inside the validity window
- calculate_discount(): 0 under min_order_amount; percentage or fixed value,
  capped by max_discount_amount when set
- max_usage_per_user is enforced through PromoCodeUsage rows
"""

import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class PromoCode(models.Model):
    TYPE_PERCENTAGE = "percentage"
    TYPE_FIXED = "fixed"

    TYPE_CHOICES = [
        (TYPE_PERCENTAGE, "Percentage"),
        (TYPE_FIXED, "Fixed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    code = models.CharField(max_length=50, unique=True)

    discount_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)

    min_order_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    max_discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )

    max_usage_count = models.PositiveIntegerField(null=True, blank=True)
    current_usage_count = models.PositiveIntegerField(default=0)
    max_usage_per_user = models.PositiveIntegerField(null=True, blank=True)

    valid_from = models.DateTimeField(null=True, blank=True)
    valid_to = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    @staticmethod
    def normalize_code(code) -> str:
        return str(code or "").strip().upper()

    def save(self, *args, **kwargs):
        self.code = self.normalize_code(self.code)
        super().save(*args, **kwargs)

    def is_valid(self, now=None) -> bool:
        now = now or timezone.now()

        if not self.is_active:
            return False

        if self.max_usage_count is not None and self.current_usage_count >= self.max_usage_count:
            return False

        if self.valid_from and now < self.valid_from:
            return False

        if self.valid_to and now > self.valid_to:
            return False

        return True

    def usage_count_for(self, user) -> int:
        return self.usages.filter(user=user).count()

    def is_valid_for_user(self, user, now=None) -> bool:
        if not self.is_valid(now=now):
            return False

        if self.max_usage_per_user is None or user is None:
            return True

        return self.usage_count_for(user) < self.max_usage_per_user

    def calculate_discount(self, order_amount) -> Decimal:
        amount = _money(order_amount)

        if self.min_order_amount is not None and amount < _money(self.min_order_amount):
            return Decimal("0.00")

        if self.discount_type == self.TYPE_PERCENTAGE:
            discount = _money(amount * _money(self.discount_value) / Decimal("100"))
        else:
            discount = _money(self.discount_value)

        if self.max_discount_amount is not None:
            discount = min(discount, _money(self.max_discount_amount))

        return discount

    def increment_usage(self):
        PromoCode.objects.filter(pk=self.pk).update(
            current_usage_count=F("current_usage_count") + 1
        )
        self.refresh_from_db(fields=["current_usage_count"])

    def __str__(self):
        return f"{self.code} ({self.discount_type} {self.discount_value})"


class PromoCodeUsage(models.Model):
    """
    One row per checkout that applied a promo code (not per produced order).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    promo_code = models.ForeignKey(
        PromoCode,
        on_delete=models.CASCADE,
        related_name="usages",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="promo_code_usages",
    )

    discount_amount = models.DecimalField(max_digits=12, decimal_places=2)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["promo_code", "user"], name="promo_usage_code_user_idx"),
        ]
