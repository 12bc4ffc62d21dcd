import hashlib
import uuid
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from notifications.models import Notification
from orders.models import Order
from orders.services.exceptions import OrderNotFoundError
from orders.services.order_orchestrator import mark_order_paid
from payments.constants import (
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PENDING,
    PROVIDER_ROBOKASSA,
    PROVIDER_TELEGRAM_STARS,
    PROVIDER_YOOKASSA,
)
from payments.models import Payment
from payments.providers.base import PaymentProviderError
from payments.services.exceptions import (
    AlreadyPaidError,
    AmountMismatchError,
    InvalidOrderError,
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentAccessDeniedError,
    PaymentProviderFailedError,
)
from payments.services.payment_orchestrator import (
    create_payment,
    get_payment_status,
    handle_robokassa_result,
    handle_telegram_pre_checkout,
    handle_telegram_successful_payment,
    handle_telegram_update,
    handle_yookassa_notification,
)

User = get_user_model()

YOOKASSA_CREATED = {
    "id": "yk-100",
    "status": "pending",
    "confirmation_url": "https://yoomoney.test/checkout/yk-100",
}


def _robokassa_signature(out_sum: str, inv_id, order_id) -> str:
    base = f"{out_sum}:{inv_id}:pass-two:Shp_orderId={order_id}"
    return hashlib.md5(base.encode("utf-8")).hexdigest()


class PaymentTestBase(TestCase):
    def setUp(self):
        self.buyer = User.objects.create_user(telegram_id=7001, first_name="Buyer")
        self.seller = User.objects.create_user(telegram_id=7002, first_name="Seller")
        self.stranger = User.objects.create_user(telegram_id=7003)

        self.order, _ = Order.place(
            buyer=self.buyer,
            seller=self.seller,
            sub_total="3500.00",
            commission_percentage="10",
            payment_method=PROVIDER_YOOKASSA,
        )

    def _paid_notifications(self):
        return Notification.objects.filter(user=self.seller, type=Notification.TYPE_PAYMENT_RECEIVED).count()

    def _yookassa_payment(self) -> Payment:
        with mock.patch("payments.providers.yookassa.create_payment", return_value=YOOKASSA_CREATED):
            result = create_payment(order_id=self.order.id, provider=PROVIDER_YOOKASSA, actor=self.buyer)
        return Payment.objects.get(pk=result.payment_id)

    def _robokassa_payment(self) -> Payment:
        result = create_payment(order_id=self.order.id, provider=PROVIDER_ROBOKASSA, actor=self.buyer)
        return Payment.objects.get(pk=result.payment_id)

    def _stars_payment(self) -> Payment:
        with mock.patch(
            "payments.providers.telegram_stars.create_invoice_link",
            return_value="https://t.me/$invoice-1",
        ):
            result = create_payment(order_id=self.order.id, provider=PROVIDER_TELEGRAM_STARS, actor=self.buyer)
        return Payment.objects.get(pk=result.payment_id)


class CreatePaymentTests(PaymentTestBase):
    """
    GUARANTEES:
    - Payment.amount is copied from the order
    - YooKassa idempotence key is the per-attempt key, new on every restart
    - Zero-total orders cannot be paid
    - Robokassa URL is signed locally (no network)
    - At most one active attempt per order
    """

    def test_yookassa_payment(self):
        with mock.patch(
            "payments.providers.yookassa.create_payment", return_value=YOOKASSA_CREATED
        ) as create:
            result = create_payment(order_id=self.order.id, provider=PROVIDER_YOOKASSA, actor=self.buyer)

        payment = Payment.objects.get(pk=result.payment_id)
        self.assertEqual(payment.amount, Decimal("3500.00"))
        self.assertEqual(payment.status, PAYMENT_STATUS_PENDING)
        self.assertEqual(payment.external_id, "yk-100")
        self.assertEqual(result.confirmation_url, YOOKASSA_CREATED["confirmation_url"])

        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["idempotence_key"], str(payment.attempt_key))
        self.assertEqual(kwargs["return_url"], "https://miniapp.example.test/payment/return")
        self.assertEqual(kwargs["metadata"]["order_id"], str(self.order.id))

    def test_explicit_return_url_wins(self):
        with mock.patch(
            "payments.providers.yookassa.create_payment", return_value=YOOKASSA_CREATED
        ) as create:
            create_payment(
                order_id=self.order.id,
                provider=PROVIDER_YOOKASSA,
                return_url="https://miniapp.example.test/custom",
                actor=self.buyer,
            )
        self.assertEqual(create.call_args.kwargs["return_url"], "https://miniapp.example.test/custom")

    def test_robokassa_payment_url(self):
        payment = self._robokassa_payment()

        self.assertEqual(payment.external_id, str(payment.robokassa_invoice_id))
        self.assertIn(f"InvId={payment.robokassa_invoice_id}", payment.confirmation_url)
        self.assertIn("OutSum=3500.00", payment.confirmation_url)
        self.assertIn(f"Shp_orderId={self.order.id}", payment.confirmation_url)

    def test_stars_payment(self):
        with mock.patch(
            "payments.providers.telegram_stars.create_invoice_link",
            return_value="https://t.me/$invoice-1",
        ) as create:
            result = create_payment(order_id=self.order.id, provider=PROVIDER_TELEGRAM_STARS, actor=self.buyer)

        payment = Payment.objects.get(pk=result.payment_id)
        self.assertEqual(result.confirmation_url, "https://t.me/$invoice-1")
        self.assertIsNone(payment.external_id)
        self.assertEqual(payment.metadata["stars"], 2334)
        self.assertEqual(create.call_args.kwargs["payload"], str(self.order.id))

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            create_payment(order_id=uuid.uuid4(), provider=PROVIDER_ROBOKASSA, actor=self.buyer)

    def test_only_buyer_can_pay(self):
        with self.assertRaises(PaymentAccessDeniedError):
            create_payment(order_id=self.order.id, provider=PROVIDER_ROBOKASSA, actor=self.seller)
        self.assertFalse(Payment.objects.exists())

    def test_unknown_provider(self):
        with self.assertRaises(InvalidPayloadError):
            create_payment(order_id=self.order.id, provider="paypal", actor=self.buyer)

    def test_paid_order_is_rejected(self):
        mark_order_paid(order=self.order)

        with self.assertRaises(AlreadyPaidError):
            create_payment(order_id=self.order.id, provider=PROVIDER_ROBOKASSA, actor=self.buyer)

    def test_cancelled_order_is_rejected(self):
        self.order.cancel("changed mind")
        self.order.save()

        with self.assertRaises(InvalidOrderError):
            create_payment(order_id=self.order.id, provider=PROVIDER_ROBOKASSA, actor=self.buyer)

    def test_repeat_request_returns_in_flight_attempt(self):
        first = self._yookassa_payment()

        with mock.patch("payments.providers.yookassa.create_payment") as create:
            result = create_payment(order_id=self.order.id, provider=PROVIDER_YOOKASSA, actor=self.buyer)

        create.assert_not_called()
        self.assertEqual(result.payment_id, first.id)
        self.assertEqual(Payment.objects.count(), 1)

    def test_switching_provider_mid_attempt_is_rejected(self):
        self._yookassa_payment()

        with self.assertRaises(AlreadyPaidError):
            create_payment(order_id=self.order.id, provider=PROVIDER_ROBOKASSA, actor=self.buyer)

    def test_provider_failure_marks_payment_failed_and_retry_restarts(self):
        with mock.patch(
            "payments.providers.yookassa.create_payment",
            side_effect=PaymentProviderError("yookassa HTTPError: 500", provider=PROVIDER_YOOKASSA),
        ):
            with self.assertRaises(PaymentProviderFailedError):
                create_payment(order_id=self.order.id, provider=PROVIDER_YOOKASSA, actor=self.buyer)

        payment = Payment.objects.get(order=self.order)
        self.assertEqual(payment.status, PAYMENT_STATUS_FAILED)
        self.assertEqual(payment.error_code, "PAYMENT_ERROR")

        result = create_payment(order_id=self.order.id, provider=PROVIDER_ROBOKASSA, actor=self.buyer)

        payment.refresh_from_db()
        self.assertEqual(result.payment_id, payment.id)
        self.assertEqual(payment.status, PAYMENT_STATUS_PENDING)
        self.assertEqual(payment.provider, PROVIDER_ROBOKASSA)
        self.assertEqual(payment.error_code, "")
        self.assertEqual(payment.metadata["previous_attempts"][0]["provider"], PROVIDER_YOOKASSA)

    def test_restarted_attempt_gets_a_new_idempotence_key(self):
        first = self._yookassa_payment()
        first_key = str(first.attempt_key)
        handle_yookassa_notification(
            {
                "event": "payment.canceled",
                "object": {"id": "yk-100", "status": "canceled", "amount": {"value": "3500.00", "currency": "RUB"}},
            }
        )

        retry_created = dict(YOOKASSA_CREATED, id="yk-101", confirmation_url="https://yoomoney.test/checkout/yk-101")
        with mock.patch("payments.providers.yookassa.create_payment", return_value=retry_created) as create:
            result = create_payment(order_id=self.order.id, provider=PROVIDER_YOOKASSA, actor=self.buyer)

        payment = Payment.objects.get(pk=result.payment_id)
        self.assertEqual(payment.id, first.id)
        self.assertEqual(payment.status, PAYMENT_STATUS_PENDING)
        self.assertEqual(payment.external_id, "yk-101")
        self.assertNotEqual(create.call_args.kwargs["idempotence_key"], first_key)
        self.assertEqual(create.call_args.kwargs["idempotence_key"], str(payment.attempt_key))
        self.assertEqual(payment.metadata["previous_attempts"][0]["attempt_key"], first_key)

    def test_restarted_robokassa_attempt_gets_a_new_invoice_id(self):
        with mock.patch(
            "payments.providers.yookassa.create_payment",
            side_effect=PaymentProviderError("yookassa HTTPError: 500", provider=PROVIDER_YOOKASSA),
        ):
            with self.assertRaises(PaymentProviderFailedError):
                create_payment(order_id=self.order.id, provider=PROVIDER_YOOKASSA, actor=self.buyer)
        failed = Payment.objects.get(order=self.order)
        first_invoice_id = failed.robokassa_invoice_id

        payment = self._robokassa_payment()

        self.assertNotEqual(payment.robokassa_invoice_id, first_invoice_id)
        self.assertIn(f"InvId={payment.robokassa_invoice_id}", payment.confirmation_url)

    def test_zero_total_order_is_rejected(self):
        free_order, _ = Order.place(
            buyer=self.buyer,
            seller=self.seller,
            sub_total="100.00",
            commission_percentage="10",
            payment_method=PROVIDER_ROBOKASSA,
            discount_amount="100.00",
        )

        with self.assertRaises(InvalidOrderError):
            create_payment(order_id=free_order.id, provider=PROVIDER_ROBOKASSA, actor=self.buyer)
        self.assertFalse(Payment.objects.filter(order=free_order).exists())


class YooKassaReconciliationTests(PaymentTestBase):
    """
    GUARANTEES:
    - succeeded -> payment completed + order paid, exactly once
    - duplicate deliveries change nothing and notify nobody
    - polling reconciles the same way as the webhook
    """

    def _notification(self, status, amount="3500.00"):
        return {
            "type": "notification",
            "event": f"payment.{status}",
            "object": {"id": "yk-100", "status": status, "amount": {"value": amount, "currency": "RUB"}},
        }

    def test_succeeded_marks_order_paid(self):
        payment = self._yookassa_payment()

        detail = handle_yookassa_notification(self._notification("succeeded"))

        self.assertEqual(detail, "Applied")
        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_COMPLETED)
        self.assertIsNotNone(payment.completed_at)
        self.assertEqual(self.order.status, Order.STATUS_PAID)
        self.assertEqual(self.order.payment_status, PAYMENT_STATUS_COMPLETED)

    def test_duplicate_webhook_notifies_once(self):
        self._yookassa_payment()

        handle_yookassa_notification(self._notification("succeeded"))
        paid_at = Order.objects.get(pk=self.order.pk).paid_at

        detail = handle_yookassa_notification(self._notification("succeeded"))

        self.assertEqual(detail, "Duplicate")
        self.assertEqual(self._paid_notifications(), 1)
        self.assertEqual(Order.objects.get(pk=self.order.pk).paid_at, paid_at)

    def test_canceled_leaves_order_pending(self):
        payment = self._yookassa_payment()

        handle_yookassa_notification(self._notification("canceled"))

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_CANCELLED)
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_pending_is_a_no_op(self):
        payment = self._yookassa_payment()

        self.assertEqual(handle_yookassa_notification(self._notification("pending")), "No status change")
        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_PENDING)

    def test_amount_mismatch_fails_payment(self):
        payment = self._yookassa_payment()

        with self.assertRaises(AmountMismatchError):
            handle_yookassa_notification(self._notification("succeeded", amount="1.00"))

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_FAILED)
        self.assertEqual(payment.error_code, "AMOUNT_MISMATCH")
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_polling_reconciles_pending_payment(self):
        payment = self._yookassa_payment()

        with mock.patch(
            "payments.providers.yookassa.get_payment", return_value={"id": "yk-100", "status": "succeeded"}
        ):
            polled = get_payment_status(payment_id=payment.id, actor=self.buyer)

        self.assertEqual(polled.status, PAYMENT_STATUS_COMPLETED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PAID)

    def test_polling_failure_returns_last_known_status(self):
        payment = self._yookassa_payment()

        with mock.patch(
            "payments.providers.yookassa.get_payment",
            side_effect=PaymentProviderError("down", provider=PROVIDER_YOOKASSA),
        ):
            polled = get_payment_status(payment_id=payment.id, actor=self.seller)

        self.assertEqual(polled.status, PAYMENT_STATUS_PENDING)

    def test_settled_payment_is_not_polled(self):
        payment = self._yookassa_payment()
        handle_yookassa_notification(self._notification("succeeded"))

        with mock.patch("payments.providers.yookassa.get_payment") as get_payment:
            get_payment_status(payment_id=payment.id, actor=self.buyer)

        get_payment.assert_not_called()

    def test_stranger_cannot_read_status(self):
        payment = self._yookassa_payment()

        with self.assertRaises(PaymentAccessDeniedError):
            get_payment_status(payment_id=payment.id, actor=self.stranger)


class RobokassaResultTests(PaymentTestBase):
    """
    GUARANTEES:
    - signature is mandatory (Password2)
    - acknowledgement is the literal OK{InvId}
    - tampered callbacks change nothing
    """

    def _result(self, payment, *, out_sum="3500.00", signature=None, order_id=None):
        order_id = order_id or str(self.order.id)
        inv_id = payment.robokassa_invoice_id
        return handle_robokassa_result(
            out_sum=out_sum,
            inv_id=str(inv_id),
            signature_value=signature or _robokassa_signature(out_sum, inv_id, order_id),
            params={"OutSum": out_sum, "InvId": str(inv_id), "Shp_orderId": order_id},
        )

    def test_valid_callback_completes_payment(self):
        payment = self._robokassa_payment()

        ack = self._result(payment)

        self.assertEqual(ack, f"OK{payment.robokassa_invoice_id}")
        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_COMPLETED)
        self.assertEqual(self.order.status, Order.STATUS_PAID)

    def test_duplicate_callback_is_acknowledged_once(self):
        payment = self._robokassa_payment()

        self._result(payment)
        ack = self._result(payment)

        self.assertEqual(ack, f"OK{payment.robokassa_invoice_id}")
        self.assertEqual(self._paid_notifications(), 1)

    def test_tampered_signature_is_rejected(self):
        payment = self._robokassa_payment()

        with self.assertRaises(InvalidSignatureError):
            self._result(payment, signature="0" * 32)

        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_PENDING)

    def test_unparseable_order_id(self):
        payment = self._robokassa_payment()

        with self.assertRaises(InvalidOrderError):
            self._result(payment, order_id="not-a-uuid")

    def test_amount_mismatch(self):
        payment = self._robokassa_payment()

        with self.assertRaises(AmountMismatchError):
            self._result(payment, out_sum="10.00")

        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_FAILED)
        self.assertEqual(payment.error_code, "AMOUNT_MISMATCH")


class TelegramStarsTests(PaymentTestBase):
    """
    GUARANTEES:
    - every pre-checkout query is answered, approve or decline
    - successful_payment stores the charge id and marks the order paid once
    - successful_payment in the wrong currency or amount fails the payment
    """

    def _query(self, payload, *, total_amount=2334):
        return {
            "id": "pcq-1",
            "from": {"id": self.buyer.telegram_id},
            "currency": "XTR",
            "total_amount": total_amount,
            "invoice_payload": payload,
        }

    def _successful(self, charge_id="charge-1", *, total_amount=2334, currency="XTR"):
        return {
            "message_id": 10,
            "from": {"id": self.buyer.telegram_id},
            "successful_payment": {
                "currency": currency,
                "total_amount": total_amount,
                "invoice_payload": str(self.order.id),
                "telegram_payment_charge_id": charge_id,
                "provider_payment_charge_id": "",
            },
        }

    @mock.patch("payments.providers.telegram_stars.answer_pre_checkout_query")
    def test_pre_checkout_approved(self, answer):
        self._stars_payment()

        self.assertTrue(handle_telegram_pre_checkout(self._query(str(self.order.id))))
        answer.assert_called_once_with(query_id="pcq-1", ok=True, error_message=None)

    @mock.patch("payments.providers.telegram_stars.answer_pre_checkout_query")
    def test_pre_checkout_declines_unknown_order(self, answer):
        self.assertFalse(handle_telegram_pre_checkout(self._query(str(uuid.uuid4()))))
        answer.assert_called_once_with(query_id="pcq-1", ok=False, error_message="Order not found")

    @mock.patch("payments.providers.telegram_stars.answer_pre_checkout_query")
    def test_pre_checkout_declines_garbage_payload(self, answer):
        self.assertFalse(handle_telegram_pre_checkout(self._query("garbage")))
        answer.assert_called_once_with(query_id="pcq-1", ok=False, error_message="Invalid order data")

    @mock.patch("payments.providers.telegram_stars.answer_pre_checkout_query")
    def test_pre_checkout_declines_wrong_amount(self, answer):
        self._stars_payment()

        self.assertFalse(handle_telegram_pre_checkout(self._query(str(self.order.id), total_amount=1)))
        self.assertFalse(answer.call_args.kwargs["ok"])

    @mock.patch("payments.providers.telegram_stars.answer_pre_checkout_query")
    def test_pre_checkout_declines_paid_order(self, answer):
        self._stars_payment()
        handle_telegram_successful_payment(self._successful())

        self.assertFalse(handle_telegram_pre_checkout(self._query(str(self.order.id))))
        answer.assert_called_once_with(query_id="pcq-1", ok=False, error_message="Order processing error")

    @mock.patch(
        "payments.providers.telegram_stars.answer_pre_checkout_query",
        side_effect=PaymentProviderError("timeout", provider=PROVIDER_TELEGRAM_STARS),
    )
    def test_answer_failure_is_not_raised(self, answer):
        self._stars_payment()
        self.assertTrue(handle_telegram_pre_checkout(self._query(str(self.order.id))))

    def test_successful_payment_marks_paid(self):
        payment = self._stars_payment()

        self.assertEqual(handle_telegram_successful_payment(self._successful()), "Applied")

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_COMPLETED)
        self.assertEqual(payment.external_id, "charge-1")
        self.assertEqual(payment.metadata["telegram_user_id"], self.buyer.telegram_id)
        self.assertEqual(self.order.status, Order.STATUS_PAID)

    def test_duplicate_successful_payment(self):
        self._stars_payment()

        handle_telegram_successful_payment(self._successful())
        self.assertEqual(handle_telegram_successful_payment(self._successful()), "Duplicate")
        self.assertEqual(self._paid_notifications(), 1)

    def test_successful_payment_without_charge_id(self):
        with self.assertRaises(InvalidPayloadError):
            handle_telegram_successful_payment(self._successful(charge_id=""))

    def test_successful_payment_with_wrong_amount_fails(self):
        payment = self._stars_payment()

        with self.assertRaises(AmountMismatchError):
            handle_telegram_successful_payment(self._successful(total_amount=1))

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_FAILED)
        self.assertEqual(payment.error_code, "AMOUNT_MISMATCH")
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertEqual(self._paid_notifications(), 0)

    def test_successful_payment_with_wrong_currency_fails(self):
        payment = self._stars_payment()

        with self.assertRaises(AmountMismatchError):
            handle_telegram_successful_payment(self._successful(currency="USD"))

        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_FAILED)
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, Order.STATUS_PENDING)

    def test_update_dispatch(self):
        payment = self._stars_payment()

        self.assertEqual(handle_telegram_update({"update_id": 1, "message": {"text": "hi"}}), "Ignored")
        self.assertEqual(
            handle_telegram_update({"update_id": 2, "message": self._successful()}),
            "Applied",
        )
        payment.refresh_from_db()
        self.assertEqual(payment.status, PAYMENT_STATUS_COMPLETED)
