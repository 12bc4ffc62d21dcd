import uuid
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from notifications.models import Notification
from orders.models import Order
from orders.services.order_orchestrator import mark_order_paid
from payments.constants import (
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    PROVIDER_ROBOKASSA,
    PROVIDER_TELEGRAM_STARS,
    PROVIDER_YOOKASSA,
)
from payments.models import Payment
from payments.providers.base import PaymentProviderError
from payments.services.exceptions import (
    InvalidPaymentStatusError,
    ManualRefundRequiredError,
    PaymentAccessDeniedError,
    PaymentNotFoundError,
    RefundFailedError,
)
from payments.services.refund_orchestrator import refund_payment

User = get_user_model()


class RefundOrchestratorTests(TestCase):
    """
    GUARANTEES:
    - Only completed payments are refunded; nothing else reaches a provider
    - Success: payment + order -> refunded, buyer notified
    - Provider failure: everything back to completed, RefundFailed raised
    - Robokassa is always a manual refund
    """

    def setUp(self):
        self.buyer = User.objects.create_user(telegram_id=8001)
        self.seller = User.objects.create_user(telegram_id=8002)
        self.staff = User.objects.create_user(telegram_id=8003, is_staff=True)

    def _paid(self, provider, *, external_id="ext-1", metadata=None, complete=True):
        order, _ = Order.place(
            buyer=self.buyer,
            seller=self.seller,
            sub_total="1200.00",
            commission_percentage="10",
            payment_method=provider,
        )
        payment = Payment.objects.create(
            order=order,
            amount=order.total_amount,
            provider=provider,
            external_id=external_id,
            metadata=metadata or {},
        )
        if complete:
            payment.mark_completed()
            payment.save()
            mark_order_paid(order=order)
        return payment

    # =====================================================
    # GUARDS
    # =====================================================

    @mock.patch("payments.providers.yookassa.create_refund")
    def test_pending_payment_is_not_refunded(self, create_refund):
        payment = self._paid(PROVIDER_YOOKASSA, complete=False)

        with self.assertRaises(InvalidPaymentStatusError):
            refund_payment(payment_id=payment.id, actor=self.seller)

        create_refund.assert_not_called()
        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_PENDING)

    def test_unknown_payment(self):
        with self.assertRaises(PaymentNotFoundError):
            refund_payment(payment_id=uuid.uuid4())

    @mock.patch("payments.providers.yookassa.create_refund")
    def test_buyer_cannot_refund(self, create_refund):
        payment = self._paid(PROVIDER_YOOKASSA)

        with self.assertRaises(PaymentAccessDeniedError):
            refund_payment(payment_id=payment.id, actor=self.buyer)

        create_refund.assert_not_called()

    def test_robokassa_requires_manual_refund(self):
        payment = self._paid(PROVIDER_ROBOKASSA, external_id="12345")

        with self.assertRaises(ManualRefundRequiredError):
            refund_payment(payment_id=payment.id, actor=self.staff)

        payment.refresh_from_db()
        payment.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_COMPLETED)
        self.assertEqual(payment.order.payment_status, PAYMENT_STATUS_COMPLETED)

    # =====================================================
    # PROVIDERS
    # =====================================================

    @mock.patch("payments.providers.yookassa.create_refund", return_value={"id": "rf-1", "status": "succeeded"})
    def test_yookassa_refund(self, create_refund):
        payment = self._paid(PROVIDER_YOOKASSA, external_id="yk-9")

        refunded = refund_payment(payment_id=payment.id, actor=self.seller)

        self.assertEqual(refunded.status, PAYMENT_STATUS_REFUNDED)
        self.assertEqual(refunded.metadata["refund_id"], "rf-1")

        kwargs = create_refund.call_args.kwargs
        self.assertEqual(kwargs["external_id"], "yk-9")
        self.assertEqual(kwargs["amount"], payment.amount)
        self.assertNotEqual(kwargs["idempotence_key"], str(payment.id))

        order = Order.objects.get(pk=payment.order_id)
        self.assertEqual(order.status, Order.STATUS_REFUNDED)
        self.assertEqual(order.payment_status, PAYMENT_STATUS_REFUNDED)
        self.assertTrue(
            Notification.objects.filter(user=self.buyer, type=Notification.TYPE_ORDER_REFUNDED).exists()
        )

    @mock.patch("payments.providers.telegram_stars.refund_star_payment", return_value=True)
    def test_stars_refund_uses_payer_and_charge_id(self, refund_star_payment):
        payment = self._paid(
            PROVIDER_TELEGRAM_STARS,
            external_id="charge-7",
            metadata={"telegram_user_id": 424242, "stars": 800},
        )

        refund_payment(payment_id=payment.id)

        refund_star_payment.assert_called_once_with(user_id=424242, charge_id="charge-7")
        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_REFUNDED)

    @mock.patch("payments.providers.telegram_stars.refund_star_payment", return_value=True)
    def test_stars_refund_falls_back_to_buyer_telegram_id(self, refund_star_payment):
        payment = self._paid(PROVIDER_TELEGRAM_STARS, external_id="charge-8")

        refund_payment(payment_id=payment.id, actor=self.staff)

        refund_star_payment.assert_called_once_with(user_id=self.buyer.telegram_id, charge_id="charge-8")

    @mock.patch(
        "payments.providers.yookassa.create_refund",
        side_effect=PaymentProviderError("yookassa refund status is 'canceled'", provider=PROVIDER_YOOKASSA),
    )
    def test_provider_failure_reverts_to_completed(self, create_refund):
        payment = self._paid(PROVIDER_YOOKASSA)

        with self.assertRaises(RefundFailedError):
            refund_payment(payment_id=payment.id, actor=self.seller)

        payment.refresh_from_db()
        order = Order.objects.get(pk=payment.order_id)
        self.assertEqual(payment.status, PAYMENT_STATUS_COMPLETED)
        self.assertIn("canceled", payment.metadata["last_refund_error"])
        self.assertEqual(order.status, Order.STATUS_PAID)
        self.assertEqual(order.payment_status, PAYMENT_STATUS_COMPLETED)

    @mock.patch("payments.providers.yookassa.create_refund", return_value={"id": "rf-1", "status": "succeeded"})
    def test_refunded_payment_cannot_be_refunded_twice(self, create_refund):
        payment = self._paid(PROVIDER_YOOKASSA)
        refund_payment(payment_id=payment.id, actor=self.seller)

        with self.assertRaises(InvalidPaymentStatusError):
            refund_payment(payment_id=payment.id, actor=self.seller)

        self.assertEqual(create_refund.call_count, 1)
