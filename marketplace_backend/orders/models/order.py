# orders/models/order.py

import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from orders.events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderPaid,
    OrderRefunded,
    OrderStatusChanged,
)
from payments.constants import (
    PAYMENT_STATUS_CHOICES,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUS_REFUNDING,
    PROVIDER_CHOICES,
)

User = settings.AUTH_USER_MODEL

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class InvalidOrderTransitionError(ValueError):
    """
    Raised by Order transition methods when a guard is violated.
    The in-memory order is left untouched.
    """

    code = "INVALID_STATE_TRANSITION"


class Order(models.Model):
    """
    One seller's portion of a buyer checkout.

    GUARANTEES:
    - Money fields are computed once in place() and never recalculated
    - status (fulfilment) and payment_status (money) are separate axes
    - Both axes change ONLY through the transition methods below;
      save() re-validates the status move so direct writes cannot bypass it
    - Every transition returns the domain event it emitted
    """

    STATUS_PENDING = "pending"
    STATUS_PAID = "paid"
    STATUS_PROCESSING = "processing"
    STATUS_DELIVERED = "delivered"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_REFUNDED = "refunded"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PAID, "Paid"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_REFUNDED, "Refunded"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_no = models.CharField(
        max_length=64,
        unique=True,
        blank=True,
        help_text="System-generated public order number",
    )

    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="purchases",
    )
    seller = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="sales",
    )

    status = models.CharField(
        max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING
    )
    payment_status = models.CharField(
        max_length=32, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_STATUS_PENDING
    )
    payment_method = models.CharField(max_length=32, choices=PROVIDER_CHOICES)

    # Money fields (server authoritative, fixed at creation)
    sub_total = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    commission = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    total_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    promo_code = models.CharField(max_length=50, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["buyer", "created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["seller", "created_at"], name="order_seller_created_idx"),
            models.Index(fields=["status"], name="order_status_idx"),
        ]

    _IMMUTABLE_FIELDS = (
        "buyer_id",
        "seller_id",
        "payment_method",
        "sub_total",
        "commission",
        "discount_amount",
        "total_amount",
        "promo_code",
        "created_at",
    )

    # --------------------------------------------------
    # CREATION
    # --------------------------------------------------

    @classmethod
    def place(
        cls,
        *,
        buyer,
        seller,
        sub_total,
        commission_percentage,
        payment_method: str,
        discount_amount=None,
        promo_code: str = "",
        notes: str = "",
    ):
        """
        Create and persist a Pending order. Returns (order, OrderCreated).
        """
        sub_total = _money(sub_total)
        discount = _money(discount_amount)
        commission = _money(sub_total * Decimal(str(commission_percentage)) / Decimal("100"))

        order = cls(
            buyer=buyer,
            seller=seller,
            payment_method=payment_method,
            sub_total=sub_total,
            commission=commission,
            discount_amount=discount,
            total_amount=_money(sub_total - discount),
            promo_code=promo_code or "",
            notes=notes or "",
        )
        order.save()

        return order, OrderCreated(
            order_id=order.id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            order_no=order.order_no,
            total_amount=order.total_amount,
        )

    # --------------------------------------------------
    # FULFILMENT AXIS
    # --------------------------------------------------

    def _guard(self, target_status: str):
        from orders.services.order_lifecycle import validate_transition

        validate_transition(order=self, target_status=target_status)

    def _status_changed(self, old_status: str) -> OrderStatusChanged:
        return OrderStatusChanged(
            order_id=self.id,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            old_status=old_status,
            new_status=self.status,
        )

    def mark_as_paid(self) -> OrderPaid:
        # No status precondition: a repeated confirmation only re-stamps paid_at.
        self.payment_status = PAYMENT_STATUS_COMPLETED
        self.status = self.STATUS_PAID
        self.paid_at = timezone.now()
        return OrderPaid(
            order_id=self.id,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            order_no=self.order_no,
            total_amount=self.total_amount,
        )

    def mark_as_processing(self) -> OrderStatusChanged:
        self._guard(self.STATUS_PROCESSING)
        old = self.status
        self.status = self.STATUS_PROCESSING
        return self._status_changed(old)

    def mark_as_delivered(self) -> OrderStatusChanged:
        self._guard(self.STATUS_DELIVERED)
        old = self.status
        self.status = self.STATUS_DELIVERED
        return self._status_changed(old)

    def complete(self) -> OrderCompleted:
        self._guard(self.STATUS_COMPLETED)
        self.status = self.STATUS_COMPLETED
        self.completed_at = timezone.now()
        return OrderCompleted(
            order_id=self.id,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
        )

    def cancel(self, reason: str = "", *, cancelled_by=None) -> OrderCancelled:
        from orders.services.order_lifecycle import ISSUE_CANCELLED_WITH_CAPTURED_PAYMENT, payment_consistency_issues

        self._guard(self.STATUS_CANCELLED)
        self.status = self.STATUS_CANCELLED
        self.cancelled_at = timezone.now()
        self.cancellation_reason = (reason or "").strip()

        issues = payment_consistency_issues(self)
        return OrderCancelled(
            order_id=self.id,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            reason=self.cancellation_reason,
            cancelled_by_id=getattr(cancelled_by, "id", None),
            refund_required=ISSUE_CANCELLED_WITH_CAPTURED_PAYMENT in issues,
        )

    # --------------------------------------------------
    # PAYMENT AXIS
    # --------------------------------------------------

    def request_refund(self):
        if self.payment_status != PAYMENT_STATUS_COMPLETED:
            raise InvalidOrderTransitionError(
                f"Order {self.id} cannot request a refund while payment is '{self.payment_status}'"
            )
        self.payment_status = PAYMENT_STATUS_REFUNDING

    def abort_refund(self):
        if self.payment_status != PAYMENT_STATUS_REFUNDING:
            raise InvalidOrderTransitionError(
                f"Order {self.id} has no refund in progress"
            )
        self.payment_status = PAYMENT_STATUS_COMPLETED

    def mark_as_refunded(self) -> OrderRefunded:
        if self.payment_status not in (PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_REFUNDING):
            raise InvalidOrderTransitionError(
                f"Order {self.id} cannot be refunded while payment is '{self.payment_status}'"
            )
        self.payment_status = PAYMENT_STATUS_REFUNDED
        self.status = self.STATUS_REFUNDED
        return OrderRefunded(
            order_id=self.id,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            amount=self.total_amount,
        )

    # --------------------------------------------------
    # PERSISTENCE GUARDS
    # --------------------------------------------------

    def _validate_against(self, previous: "Order"):
        for field in self._IMMUTABLE_FIELDS:
            if getattr(previous, field) != getattr(self, field):
                raise ValueError(f"Order.{field} is immutable after creation.")

        if previous.status != self.status:
            from orders.services.order_lifecycle import can_transition

            if not can_transition(from_status=previous.status, to_status=self.status):
                raise ValueError(
                    f"Order status change {previous.status} -> {self.status} is not allowed."
                )

    def save(self, *args, **kwargs):
        if not self.order_no:
            prefix = timezone.now().strftime("ORD%Y%m%d")
            self.order_no = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

        if not self._state.adding:
            previous = type(self).objects.filter(pk=self.pk).first()
            if previous is not None:
                self._validate_against(previous)

        super().save(*args, **kwargs)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_COMPLETED

    @property
    def is_refunded(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_REFUNDED

    def __str__(self):
        return f"{self.order_no} | {self.total_amount} | {self.status}"
