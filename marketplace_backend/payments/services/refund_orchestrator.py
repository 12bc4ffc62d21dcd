# payments/services/refund_orchestrator.py

"""
REFUND ORCHESTRATOR (APPLICATION SERVICE)

Full refund of a completed Payment, in three steps:

1) BEGIN (transaction, row locks: Order then Payment)
   - payment -> refunding, order.payment_status -> refunding
2) PROVIDER CALL (no transaction, no locks held)
   - YooKassa: POST /refunds, fresh idempotence key, must be "succeeded"
   - Telegram Stars: refundStarPayment by charge id
   - Robokassa: no refund API -> ManualRefundRequired BEFORE step 1
3) FINISH (transaction, row locks)
   - success: payment + order -> refunded, buyer notified
   - failure: compensation back to completed, RefundFailed raised

A refund is never retried here; the caller re-invokes.
"""

from __future__ import annotations

import logging
import uuid

from django.db import transaction

from orders.services.order_events import publish_order_events
from payments.constants import (
    PAYMENT_STATUS_COMPLETED,
    PROVIDER_ROBOKASSA,
    PROVIDER_TELEGRAM_STARS,
    PROVIDER_YOOKASSA,
)
from payments.models import Payment
from payments.providers import telegram_stars, yookassa
from payments.providers.base import PaymentProviderError
from payments.services.exceptions import (
    InvalidPaymentStatusError,
    ManualRefundRequiredError,
    PaymentAccessDeniedError,
    PaymentNotFoundError,
    RefundFailedError,
)
from payments.services.locking import lock_payment_with_order

logger = logging.getLogger(__name__)


def _assert_actor_can_refund(*, actor, payment: Payment):
    if actor is None:
        return
    if getattr(actor, "is_staff", False) or actor.pk == payment.order.seller_id:
        return
    raise PaymentAccessDeniedError("Only the seller or platform staff can refund this payment")


@transaction.atomic
def _begin_refund(*, payment_id, actor) -> Payment:
    payment, order = lock_payment_with_order(payment_id)
    if payment is None:
        raise PaymentNotFoundError("Payment not found")

    _assert_actor_can_refund(actor=actor, payment=payment)

    if payment.status != PAYMENT_STATUS_COMPLETED:
        raise InvalidPaymentStatusError(
            f"Only completed payments can be refunded (current: '{payment.status}')"
        )

    if payment.provider == PROVIDER_ROBOKASSA:
        raise ManualRefundRequiredError(
            "Robokassa refunds must be issued manually from the merchant dashboard"
        )

    payment.mark_refunding()
    order.request_refund()
    payment.save()
    order.save()
    return payment


def _provider_refund(payment: Payment) -> dict:
    if not payment.external_id:
        raise PaymentProviderError("Payment has no provider reference to refund", provider=payment.provider)

    if payment.provider == PROVIDER_YOOKASSA:
        refund = yookassa.create_refund(
            external_id=payment.external_id,
            amount=payment.amount,
            currency=payment.currency,
            idempotence_key=str(uuid.uuid4()),
        )
        return {"refund_id": refund.get("id")}

    if payment.provider == PROVIDER_TELEGRAM_STARS:
        user_id = (payment.metadata or {}).get("telegram_user_id") or payment.order.buyer.telegram_id
        telegram_stars.refund_star_payment(user_id=user_id, charge_id=payment.external_id)
        return {}

    raise PaymentProviderError(f"Refunds are not supported for {payment.provider}", provider=payment.provider)


@transaction.atomic
def _finish_refund(*, payment_id, refund_meta: dict) -> Payment:
    payment, order = lock_payment_with_order(payment_id)

    payment.mark_refunded()
    for key, value in refund_meta.items():
        payment.set_metadata(key, value)
    refunded = order.mark_as_refunded()

    payment.save()
    order.save()
    publish_order_events([refunded])
    return payment


@transaction.atomic
def _abort_refund(*, payment_id, reason: str) -> Payment:
    payment, order = lock_payment_with_order(payment_id)

    payment.revert_refund()
    payment.set_metadata("last_refund_error", reason)
    order.abort_refund()

    payment.save()
    order.save()
    return payment


def refund_payment(*, payment_id, actor=None) -> Payment:
    payment = _begin_refund(payment_id=payment_id, actor=actor)

    try:
        refund_meta = _provider_refund(payment)
    except PaymentProviderError as exc:
        logger.warning(
            "Provider refund failed; reverting to completed",
            extra={"payment_id": str(payment.id), "provider": payment.provider, "error": str(exc)},
        )
        _abort_refund(payment_id=payment.id, reason=str(exc))
        raise RefundFailedError(f"Refund failed: {exc}") from exc

    payment = _finish_refund(payment_id=payment.id, refund_meta=refund_meta)

    logger.info(
        "Payment refunded",
        extra={"payment_id": str(payment.id), "order_id": str(payment.order_id)},
    )
    return payment
