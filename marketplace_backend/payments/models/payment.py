# payments/models/payment.py

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from payments.constants import (
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_CHOICES,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUS_REFUNDING,
    PAYMENT_STATUS_WAITING_FOR_CAPTURE,
    PROVIDER_CHOICES,
)


class Payment(models.Model):
    """
    One provider-side payment attempt for exactly one Order.

    Rules:
    - order is unique (1:1); a failed/cancelled attempt is restarted in place
      and the previous attempt is archived in metadata["previous_attempts"]
    - amount is copied from Order.total_amount at creation and never changes
    - rows are never deleted (audit trail); refund is a status transition
    - services call the transition methods, then save()
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    currency = models.CharField(max_length=8, default="RUB")

    provider = models.CharField(max_length=32, choices=PROVIDER_CHOICES)
    status = models.CharField(
        max_length=32, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_STATUS_PENDING
    )

    attempt_key = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        help_text="Per-attempt provider key (YooKassa Idempotence-Key, Robokassa InvId source)",
    )

    external_id = models.CharField(
        max_length=128,
        null=True,
        blank=True,
        help_text="Provider payment id (YooKassa id / Telegram charge id / Robokassa InvId)",
    )
    confirmation_url = models.URLField(max_length=2000, blank=True, default="")

    error_code = models.CharField(max_length=64, blank=True, default="")
    error_message = models.TextField(blank=True, default="")

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["provider", "external_id"], name="payment_provider_ext_idx"),
            models.Index(fields=["status"], name="payment_status_idx"),
        ]

    # --------------------------------------------------
    # PROVIDER DATA
    # --------------------------------------------------

    def set_external_id(self, external_id):
        self.external_id = str(external_id) if external_id not in (None, "") else None

    def set_confirmation_url(self, url):
        self.confirmation_url = str(url or "")

    def set_metadata(self, key: str, value):
        metadata = dict(self.metadata or {})
        metadata[key] = value
        self.metadata = metadata

    @property
    def robokassa_invoice_id(self) -> int:
        # Robokassa InvId is a 31-bit integer; one per attempt.
        return (int(self.attempt_key.hex[:8], 16) & 0x7FFFFFFF) or 1

    # --------------------------------------------------
    # STATUS TRANSITIONS
    # --------------------------------------------------

    def mark_waiting_for_capture(self):
        self.status = PAYMENT_STATUS_WAITING_FOR_CAPTURE

    def mark_completed(self):
        self.status = PAYMENT_STATUS_COMPLETED
        self.completed_at = timezone.now()

    def mark_failed(self, error_code: str = "", error_message: str = ""):
        self.status = PAYMENT_STATUS_FAILED
        self.error_code = error_code or ""
        self.error_message = error_message or ""

    def mark_cancelled(self):
        self.status = PAYMENT_STATUS_CANCELLED

    def mark_refunding(self):
        if self.status != PAYMENT_STATUS_COMPLETED:
            raise ValueError(f"Payment {self.id} is '{self.status}', only completed payments can be refunded")
        self.status = PAYMENT_STATUS_REFUNDING

    def revert_refund(self):
        if self.status != PAYMENT_STATUS_REFUNDING:
            raise ValueError(f"Payment {self.id} has no refund in progress")
        self.status = PAYMENT_STATUS_COMPLETED

    def mark_refunded(self):
        self.status = PAYMENT_STATUS_REFUNDED

    def restart(self, *, provider: str):
        """
        Reuse a closed (failed/cancelled) attempt row for a new attempt.
        """
        history = list((self.metadata or {}).get("previous_attempts") or [])
        history.append(
            {
                "attempt_key": str(self.attempt_key),
                "provider": self.provider,
                "status": self.status,
                "external_id": self.external_id,
                "error_code": self.error_code,
                "created_at": self.created_at.isoformat() if self.created_at else None,
            }
        )

        self.attempt_key = uuid.uuid4()
        self.provider = provider
        self.status = PAYMENT_STATUS_PENDING
        self.external_id = None
        self.confirmation_url = ""
        self.error_code = ""
        self.error_message = ""
        self.completed_at = None
        self.metadata = {"previous_attempts": history}

    def save(self, *args, **kwargs):
        if not self._state.adding:
            previous_amount = (
                type(self).objects.filter(pk=self.pk).values_list("amount", flat=True).first()
            )
            if previous_amount is not None and previous_amount != self.amount:
                raise ValueError("Payment.amount is immutable after creation.")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.provider}:{self.external_id or '-'} | {self.amount} {self.currency} | {self.status}"
