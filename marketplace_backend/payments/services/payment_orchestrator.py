# payments/services/payment_orchestrator.py

"""
PAYMENT ORCHESTRATOR (APPLICATION SERVICE)

Purpose:
- Open a provider payment for an Order and hand the client a confirmation URL.
- Reconcile every inbound provider signal (YooKassa webhook + polling,
  Robokassa ResultURL, Telegram Stars bot updates) onto exactly one Payment.

Hard rules:
- Payment.amount is copied from Order.total_amount; provider amounts are
  compared against it, never trusted.
- Provider HTTP calls run OUTSIDE any DB transaction / row lock.
- Every status change goes through _apply_provider_status() under the
  Order + Payment row locks, always taken Order first. Only pending /
  waiting_for_capture payments accept a change; anything else is a duplicate and short-circuits (no second
  MarkAsPaid, no second notification).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction

from orders.models import Order
from orders.services.exceptions import OrderNotFoundError
from orders.services.order_orchestrator import mark_order_paid
from payments.constants import (
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_WAITING_FOR_CAPTURE,
    PROVIDER_ROBOKASSA,
    PROVIDER_TELEGRAM_STARS,
    PROVIDER_YOOKASSA,
    PROVIDERS,
    RECONCILABLE_STATUSES,
    RESTARTABLE_STATUSES,
)
from payments.models import Payment
from payments.providers import robokassa, telegram_stars, yookassa
from payments.providers.base import PaymentProviderError
from payments.services.exceptions import (
    AlreadyPaidError,
    AmountMismatchError,
    InvalidOrderError,
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentAccessDeniedError,
    PaymentNotFoundError,
    PaymentProviderFailedError,
)
from payments.services.locking import lock_payment_with_order

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")

PRE_CHECKOUT_ORDER_NOT_FOUND = "Order not found"
PRE_CHECKOUT_INVALID_ORDER = "Invalid order data"
PRE_CHECKOUT_PROCESSING_ERROR = "Order processing error"


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PaymentResult:
    payment_id: uuid.UUID
    order_id: uuid.UUID
    provider: str
    status: str
    confirmation_url: str
    message: str = ""

    @classmethod
    def from_payment(cls, payment: Payment, *, message: str = "") -> "PaymentResult":
        return cls(
            payment_id=payment.id,
            order_id=payment.order_id,
            provider=payment.provider,
            status=payment.status,
            confirmation_url=payment.confirmation_url,
            message=message,
        )

    def as_dict(self) -> dict:
        return asdict(self)


def _parse_uuid(value, *, error_cls, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError) as exc:
        raise error_cls(message) from exc


def _can_view(payment: Payment, actor) -> bool:
    if actor is None or getattr(actor, "is_staff", False):
        return True
    return actor.pk in (payment.order.buyer_id, payment.order.seller_id)


# ============================================================
# CREATE
# ============================================================


def _normalize_provider(provider) -> str:
    p = str(provider or "").strip().lower()
    if p not in PROVIDERS:
        raise InvalidPayloadError(f"Unsupported payment provider: {provider!r}")
    return p


def _default_return_url(order: Order) -> str:
    configured = (getattr(settings, "PAYMENTS", {}).get("YOOKASSA") or {}).get("RETURN_URL")
    if configured:
        return str(configured)
    base = str(getattr(settings, "FRONTEND_BASE_URL", "") or "").rstrip("/")
    return f"{base}/orders/{order.id}"


@transaction.atomic
def _open_payment(*, order_id, provider: str, actor) -> tuple[Payment, bool]:
    """
    Returns (payment, needs_dispatch). needs_dispatch=False means an
    in-flight attempt for the same provider already has its confirmation URL.
    """
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")

    if actor is not None and actor.pk != order.buyer_id:
        raise PaymentAccessDeniedError("Only the buyer can pay for this order")

    if order.payment_status != PAYMENT_STATUS_PENDING:
        raise AlreadyPaidError(f"Order payment is already '{order.payment_status}'")

    if order.status == Order.STATUS_CANCELLED:
        raise InvalidOrderError("Cancelled orders cannot be paid")

    if _money(order.total_amount) <= Decimal("0.00"):
        raise InvalidOrderError("Order total must be positive to be paid")

    payment = Payment.objects.select_for_update().filter(order=order).first()

    if payment is None:
        payment = Payment.objects.create(
            order=order,
            amount=order.total_amount,
            currency=str(getattr(settings, "MARKETPLACE_CURRENCY", "RUB") or "RUB"),
            provider=provider,
        )
        return payment, True

    if payment.status in RECONCILABLE_STATUSES:
        if payment.provider != provider:
            raise AlreadyPaidError(
                f"A {payment.provider} payment for this order is already in progress"
            )
        return payment, not payment.confirmation_url

    if payment.status in RESTARTABLE_STATUSES:
        payment.restart(provider=provider)
        payment.save()
        return payment, True

    raise AlreadyPaidError(f"Order payment is already '{payment.status}'")


def _dispatch_create(*, payment: Payment, order: Order, return_url: str | None) -> dict:
    """
    Provider call only; no DB writes. Returns external_id / confirmation_url / metadata.
    """
    description = f"Order {order.order_no}"

    if payment.provider == PROVIDER_YOOKASSA:
        created = yookassa.create_payment(
            amount=payment.amount,
            currency=payment.currency,
            description=description,
            return_url=return_url or _default_return_url(order),
            idempotence_key=str(payment.attempt_key),
            metadata={
                "order_id": str(order.id),
                "payment_id": str(payment.id),
                "user_id": str(order.buyer_id),
            },
        )
        return {
            "external_id": created["id"],
            "confirmation_url": created["confirmation_url"],
            "metadata": {},
        }

    if payment.provider == PROVIDER_ROBOKASSA:
        inv_id = payment.robokassa_invoice_id
        url = robokassa.build_payment_url(
            amount=payment.amount,
            inv_id=inv_id,
            description=description,
            custom_params={robokassa.ORDER_PARAM: str(order.id)},
        )
        return {"external_id": str(inv_id), "confirmation_url": url, "metadata": {}}

    stars = telegram_stars.rub_to_stars(payment.amount)
    link = telegram_stars.create_invoice_link(
        title=description,
        description=f"Payment for order {order.order_no}",
        payload=str(order.id),
        stars=stars,
    )
    return {
        "external_id": None,
        "confirmation_url": link,
        "metadata": {"payload": str(order.id), "stars": stars},
    }


@transaction.atomic
def _store_provider_response(*, payment_id, created: dict) -> Payment:
    payment = Payment.objects.select_for_update().get(pk=payment_id)
    if created.get("external_id"):
        payment.set_external_id(created["external_id"])
    payment.set_confirmation_url(created.get("confirmation_url"))
    for key, value in (created.get("metadata") or {}).items():
        payment.set_metadata(key, value)
    payment.save()
    return payment


@transaction.atomic
def _record_provider_failure(*, payment_id, message: str) -> Payment:
    payment = Payment.objects.select_for_update().get(pk=payment_id)
    if payment.status == PAYMENT_STATUS_PENDING:
        payment.mark_failed(PaymentProviderFailedError.code, message)
        payment.save()
    return payment


def create_payment(*, order_id, provider, return_url: str | None = None, actor=None) -> PaymentResult:
    provider = _normalize_provider(provider)

    payment, needs_dispatch = _open_payment(order_id=order_id, provider=provider, actor=actor)
    if not needs_dispatch:
        logger.info("Returning in-flight payment", extra={"payment_id": str(payment.id)})
        return PaymentResult.from_payment(payment, message="Payment already in progress")

    try:
        created = _dispatch_create(payment=payment, order=payment.order, return_url=return_url)
    except PaymentProviderError as exc:
        logger.warning(
            "Provider payment creation failed",
            extra={"payment_id": str(payment.id), "provider": provider, "error": str(exc)},
        )
        _record_provider_failure(payment_id=payment.id, message=str(exc))
        raise PaymentProviderFailedError(f"Payment provider error: {exc}") from exc

    payment = _store_provider_response(payment_id=payment.id, created=created)

    logger.info(
        "Payment created",
        extra={"payment_id": str(payment.id), "order_id": str(payment.order_id), "provider": provider},
    )
    return PaymentResult.from_payment(payment)


# ============================================================
# RECONCILIATION CORE
# ============================================================


@transaction.atomic
def _apply_provider_status(
    *,
    payment_id,
    target_status: str,
    external_id=None,
    error_code: str = "",
    error_message: str = "",
    metadata: dict | None = None,
) -> tuple[Payment, bool]:
    """
    Returns (payment, changed). changed=False for duplicates and no-ops.
    """
    payment, order = lock_payment_with_order(payment_id)
    if payment is None:
        raise PaymentNotFoundError("Payment not found")

    if payment.status not in RECONCILABLE_STATUSES:
        logger.info(
            "Provider signal ignored; payment already settled",
            extra={"payment_id": str(payment.id), "status": payment.status, "target": target_status},
        )
        return payment, False

    if target_status == payment.status:
        return payment, False

    if external_id:
        payment.set_external_id(external_id)
    for key, value in (metadata or {}).items():
        payment.set_metadata(key, value)

    if target_status == PAYMENT_STATUS_COMPLETED:
        payment.mark_completed()
        payment.save()

        if order.status == Order.STATUS_CANCELLED:
            logger.warning(
                "Payment captured for a cancelled order",
                extra={"order_id": str(order.id), "payment_id": str(payment.id)},
            )
        mark_order_paid(order=order)
    elif target_status == PAYMENT_STATUS_WAITING_FOR_CAPTURE:
        payment.mark_waiting_for_capture()
        payment.save()
    elif target_status == PAYMENT_STATUS_CANCELLED:
        payment.mark_cancelled()
        payment.save()
    elif target_status == PAYMENT_STATUS_FAILED:
        payment.mark_failed(error_code, error_message)
        payment.save()
    else:
        raise ValueError(f"Unsupported reconciliation target: {target_status}")

    logger.info(
        "Payment status reconciled",
        extra={"payment_id": str(payment.id), "status": payment.status},
    )
    return payment, True


# ============================================================
# STATUS / POLLING
# ============================================================


def get_payment_status(*, payment_id, actor=None) -> Payment:
    """
    YooKassa payments still in flight are polled and reconciled first;
    Robokassa and Stars are push-only and return the last known status.
    """
    payment = Payment.objects.select_related("order").filter(pk=payment_id).first()
    if payment is None:
        raise PaymentNotFoundError("Payment not found")

    if not _can_view(payment, actor):
        raise PaymentAccessDeniedError("You are not a party to this payment")

    if (
        payment.provider == PROVIDER_YOOKASSA
        and payment.status in RECONCILABLE_STATUSES
        and payment.external_id
    ):
        try:
            data = yookassa.get_payment(payment.external_id)
        except PaymentProviderError as exc:
            logger.warning(
                "YooKassa polling failed; returning last known status",
                extra={"payment_id": str(payment.id), "error": str(exc)},
            )
            return payment

        target = yookassa.map_status(data.get("status"))
        if target is not None:
            _apply_provider_status(payment_id=payment.id, target_status=target)
            payment = Payment.objects.select_related("order").get(pk=payment.pk)

    return payment


# ============================================================
# YOOKASSA WEBHOOK
# ============================================================


def handle_yookassa_notification(payload: dict) -> str:
    """
    Returns a short detail string for the webhook response.
    No signature: authenticity is enforced by the provider IP allowlist at the edge.
    """
    obj = (payload or {}).get("object") or {}
    external_id = str(obj.get("id") or "").strip()
    if not external_id:
        raise InvalidPayloadError("Notification has no payment id")

    payment = Payment.objects.filter(provider=PROVIDER_YOOKASSA, external_id=external_id).first()
    if payment is None:
        raise PaymentNotFoundError(f"Unknown YooKassa payment {external_id}")

    target = yookassa.map_status(obj.get("status"))
    if target is None:
        return "No status change"

    amount = (obj.get("amount") or {}).get("value")
    if target == PAYMENT_STATUS_COMPLETED and amount is not None and _money(amount) != payment.amount:
        _apply_provider_status(
            payment_id=payment.id,
            target_status=PAYMENT_STATUS_FAILED,
            error_code=AmountMismatchError.code,
            error_message=f"Provider amount {amount} != {payment.amount}",
        )
        raise AmountMismatchError("Paid amount does not match the payment")

    _, changed = _apply_provider_status(payment_id=payment.id, target_status=target)
    return "Applied" if changed else "Duplicate"


# ============================================================
# ROBOKASSA RESULT URL
# ============================================================


def _shp_value(params: dict, key: str):
    for k, v in params.items():
        if k.lower() == key.lower():
            return v
    return None


def handle_robokassa_result(*, out_sum, inv_id, signature_value, params: dict | None = None) -> str:
    """
    Returns the provider-mandated acknowledgement "OK{InvId}".
    """
    try:
        amount = _money(out_sum)
        invoice_id = int(str(inv_id).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidPayloadError("OutSum / InvId are malformed") from exc

    custom = robokassa.shp_params(params)

    if not signature_value or not robokassa.verify_result_signature(
        amount, invoice_id, signature_value, custom
    ):
        raise InvalidSignatureError("Invalid Robokassa signature")

    order_id = _parse_uuid(
        _shp_value(custom, robokassa.ORDER_PARAM),
        error_cls=InvalidOrderError,
        message="Invalid order id",
    )

    payment = Payment.objects.filter(order_id=order_id, provider=PROVIDER_ROBOKASSA).first()
    if payment is None:
        raise PaymentNotFoundError("Payment not found for order")

    if invoice_id != payment.robokassa_invoice_id:
        raise InvalidOrderError("InvId does not belong to this order")

    if amount != payment.amount:
        _apply_provider_status(
            payment_id=payment.id,
            target_status=PAYMENT_STATUS_FAILED,
            error_code=AmountMismatchError.code,
            error_message=f"OutSum {amount} != {payment.amount}",
        )
        raise AmountMismatchError("Paid amount does not match the payment")

    _apply_provider_status(
        payment_id=payment.id,
        target_status=PAYMENT_STATUS_COMPLETED,
        external_id=str(invoice_id),
    )
    return f"OK{invoice_id}"


# ============================================================
# TELEGRAM STARS
# ============================================================


def _stars_payment_for_payload(payload) -> Payment | None:
    order_id = _parse_uuid(payload, error_cls=InvalidOrderError, message="Invalid order payload")
    return (
        Payment.objects.select_related("order")
        .filter(order_id=order_id, provider=PROVIDER_TELEGRAM_STARS)
        .first()
    )


def _pre_checkout_error(query: dict) -> str | None:
    """
    None = approve; otherwise the human-readable decline reason.
    """
    try:
        payment = _stars_payment_for_payload(query.get("invoice_payload"))
    except InvalidOrderError:
        return PRE_CHECKOUT_INVALID_ORDER

    if payment is None:
        return PRE_CHECKOUT_ORDER_NOT_FOUND

    expected_stars = (payment.metadata or {}).get("stars")
    if str(query.get("currency") or "") != telegram_stars.STARS_CURRENCY:
        return PRE_CHECKOUT_INVALID_ORDER
    if expected_stars is not None and int(query.get("total_amount") or 0) != int(expected_stars):
        return PRE_CHECKOUT_INVALID_ORDER

    if payment.status not in RECONCILABLE_STATUSES or payment.order.payment_status != PAYMENT_STATUS_PENDING:
        return PRE_CHECKOUT_PROCESSING_ERROR
    if payment.order.status == Order.STATUS_CANCELLED:
        return PRE_CHECKOUT_PROCESSING_ERROR

    return None


def handle_telegram_pre_checkout(query: dict) -> bool:
    """
    Always answers the query (Telegram waits only seconds).
    Any internal failure becomes a decline.
    """
    query_id = str((query or {}).get("id") or "").strip()
    if not query_id:
        raise InvalidPayloadError("pre_checkout_query has no id")

    try:
        error = _pre_checkout_error(query)
    except Exception:
        logger.exception("Pre-checkout validation failed", extra={"query_id": query_id})
        error = PRE_CHECKOUT_PROCESSING_ERROR

    approved = error is None
    try:
        telegram_stars.answer_pre_checkout_query(query_id=query_id, ok=approved, error_message=error)
    except PaymentProviderError:
        logger.exception("Failed to answer pre-checkout query", extra={"query_id": query_id})

    logger.info(
        "Pre-checkout query answered",
        extra={"query_id": query_id, "approved": approved, "reason": error or ""},
    )
    return approved


def handle_telegram_successful_payment(message: dict) -> str:
    successful = (message or {}).get("successful_payment") or {}
    charge_id = str(successful.get("telegram_payment_charge_id") or "").strip()
    if not charge_id:
        raise InvalidPayloadError("successful_payment has no charge id")

    payment = _stars_payment_for_payload(successful.get("invoice_payload"))
    if payment is None:
        raise PaymentNotFoundError("Payment not found for order")

    expected_stars = (payment.metadata or {}).get("stars")
    currency = str(successful.get("currency") or "")
    try:
        paid_stars = int(successful.get("total_amount") or 0)
    except (TypeError, ValueError):
        paid_stars = 0

    if currency != telegram_stars.STARS_CURRENCY or (
        expected_stars is not None and paid_stars != int(expected_stars)
    ):
        _apply_provider_status(
            payment_id=payment.id,
            target_status=PAYMENT_STATUS_FAILED,
            error_code=AmountMismatchError.code,
            error_message=f"Paid {paid_stars} {currency}, expected {expected_stars} {telegram_stars.STARS_CURRENCY}",
        )
        raise AmountMismatchError("Paid amount does not match the payment")

    payer = (message.get("from") or {}).get("id")
    _, changed = _apply_provider_status(
        payment_id=payment.id,
        target_status=PAYMENT_STATUS_COMPLETED,
        external_id=charge_id,
        metadata={
            "telegram_user_id": payer,
            "provider_payment_charge_id": successful.get("provider_payment_charge_id") or "",
        },
    )
    return "Applied" if changed else "Duplicate"


def handle_telegram_update(update: dict) -> str:
    update = update or {}

    query = update.get("pre_checkout_query")
    if query:
        approved = handle_telegram_pre_checkout(query)
        return "Pre-checkout approved" if approved else "Pre-checkout declined"

    message = update.get("message") or {}
    if message.get("successful_payment"):
        return handle_telegram_successful_payment(message)

    return "Ignored"
