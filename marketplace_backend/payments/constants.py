# payments/constants.py

"""
PAYMENT VOCABULARY (shared by orders + payments)

Order.payment_status and Payment.status use the same values; Order.payment_method
uses the provider values.
"""

PROVIDER_YOOKASSA = "yookassa"
PROVIDER_ROBOKASSA = "robokassa"
PROVIDER_TELEGRAM_STARS = "telegram_stars"

PROVIDER_CHOICES = [
    (PROVIDER_YOOKASSA, "YooKassa"),
    (PROVIDER_ROBOKASSA, "Robokassa"),
    (PROVIDER_TELEGRAM_STARS, "Telegram Stars"),
]

PROVIDERS = {value for value, _ in PROVIDER_CHOICES}

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_WAITING_FOR_CAPTURE = "waiting_for_capture"
PAYMENT_STATUS_COMPLETED = "completed"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_CANCELLED = "cancelled"
PAYMENT_STATUS_REFUNDING = "refunding"
PAYMENT_STATUS_REFUNDED = "refunded"

PAYMENT_STATUS_CHOICES = [
    (PAYMENT_STATUS_PENDING, "Pending"),
    (PAYMENT_STATUS_WAITING_FOR_CAPTURE, "Waiting for capture"),
    (PAYMENT_STATUS_COMPLETED, "Completed"),
    (PAYMENT_STATUS_FAILED, "Failed"),
    (PAYMENT_STATUS_CANCELLED, "Cancelled"),
    (PAYMENT_STATUS_REFUNDING, "Refunding"),
    (PAYMENT_STATUS_REFUNDED, "Refunded"),
]

# Inbound provider confirmations are applied only while the attempt is open.
# Anything else is a duplicate or late delivery and is acknowledged without effect.
RECONCILABLE_STATUSES = {
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_WAITING_FOR_CAPTURE,
}

# A new attempt may replace a closed one on the same order.
RESTARTABLE_STATUSES = {
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_CANCELLED,
}
