from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from orders.events import OrderCancelled, OrderCompleted, OrderPaid, OrderRefunded, OrderStatusChanged
from orders.models import InvalidOrderTransitionError, Order
from orders.services.order_lifecycle import (
    ISSUE_CANCELLED_WITH_CAPTURED_PAYMENT,
    ISSUE_FULFILMENT_WITHOUT_PAYMENT,
    can_transition,
    payment_consistency_issues,
)
from payments.constants import (
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUS_REFUNDING,
    PROVIDER_YOOKASSA,
)

User = get_user_model()


class OrderLifecycleTests(TestCase):
    """
    Order state machine.

    GUARANTEES:
    - Fulfilment moves strictly pending -> paid -> processing -> delivered -> completed
    - Guard violations raise and leave the order untouched
    - Completed orders cannot be cancelled; everything else can
    - save() re-checks the move, so direct field writes cannot skip states
    - Money fields are frozen after creation
    """

    def setUp(self):
        self.buyer = User.objects.create_user(telegram_id=1001, first_name="Buyer")
        self.seller = User.objects.create_user(telegram_id=2002, first_name="Seller")

        self.order, self.created_event = Order.place(
            buyer=self.buyer,
            seller=self.seller,
            sub_total="5000.00",
            commission_percentage="10",
            payment_method=PROVIDER_YOOKASSA,
        )

    def _paid_order(self):
        self.order.mark_as_paid()
        self.order.save()
        return self.order

    # =====================================================
    # CREATION
    # =====================================================

    def test_place_computes_commission_and_total(self):
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertEqual(self.order.sub_total, Decimal("5000.00"))
        self.assertEqual(self.order.commission, Decimal("500.00"))
        self.assertEqual(self.order.total_amount, Decimal("5000.00"))
        self.assertTrue(self.order.order_no.startswith("ORD"))

    def test_place_subtracts_discount_from_total(self):
        order, _ = Order.place(
            buyer=self.buyer,
            seller=self.seller,
            sub_total="3000.00",
            commission_percentage="10",
            payment_method=PROVIDER_YOOKASSA,
            discount_amount="500.00",
            promo_code="SAVE10",
        )
        self.assertEqual(order.total_amount, Decimal("2500.00"))
        self.assertEqual(order.commission, Decimal("300.00"))

    def test_place_returns_created_event(self):
        self.assertEqual(self.created_event.order_id, self.order.id)
        self.assertEqual(self.created_event.seller_id, self.seller.id)
        self.assertEqual(self.created_event.order_no, self.order.order_no)

    # =====================================================
    # FULFILMENT PATH
    # =====================================================

    def test_full_fulfilment_path_emits_events(self):
        paid = self.order.mark_as_paid()
        self.order.save()
        self.assertIsInstance(paid, OrderPaid)
        self.assertEqual(self.order.payment_status, PAYMENT_STATUS_COMPLETED)
        self.assertIsNotNone(self.order.paid_at)

        processing = self.order.mark_as_processing()
        self.order.save()
        self.assertIsInstance(processing, OrderStatusChanged)
        self.assertEqual(processing.old_status, Order.STATUS_PAID)
        self.assertEqual(processing.new_status, Order.STATUS_PROCESSING)

        self.order.mark_as_delivered()
        self.order.save()

        completed = self.order.complete()
        self.order.save()
        self.assertIsInstance(completed, OrderCompleted)

        refreshed = Order.objects.get(pk=self.order.pk)
        self.assertEqual(refreshed.status, Order.STATUS_COMPLETED)
        self.assertIsNotNone(refreshed.completed_at)

    def test_processing_requires_paid(self):
        with self.assertRaises(InvalidOrderTransitionError):
            self.order.mark_as_processing()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_delivered_requires_processing(self):
        self._paid_order()
        with self.assertRaises(InvalidOrderTransitionError):
            self.order.mark_as_delivered()
        self.assertEqual(self.order.status, Order.STATUS_PAID)

    def test_complete_requires_delivered(self):
        self._paid_order()
        self.order.mark_as_processing()
        with self.assertRaises(InvalidOrderTransitionError):
            self.order.complete()
        self.assertIsNone(self.order.completed_at)

    def test_mark_as_paid_is_repeatable(self):
        self._paid_order()
        first_paid_at = self.order.paid_at

        self.order.mark_as_paid()
        self.order.save()

        self.assertEqual(self.order.status, Order.STATUS_PAID)
        self.assertGreaterEqual(self.order.paid_at, first_paid_at)

    # =====================================================
    # CANCELLATION
    # =====================================================

    def test_pending_order_can_be_cancelled(self):
        event = self.order.cancel("changed my mind", cancelled_by=self.buyer)
        self.order.save()

        self.assertIsInstance(event, OrderCancelled)
        self.assertEqual(event.cancelled_by_id, self.buyer.id)
        self.assertFalse(event.refund_required)
        self.assertEqual(self.order.cancellation_reason, "changed my mind")
        self.assertIsNotNone(self.order.cancelled_at)

    def test_cancelling_paid_order_flags_refund(self):
        self._paid_order()
        event = self.order.cancel("seller unavailable")

        self.assertTrue(event.refund_required)
        self.assertIn(ISSUE_CANCELLED_WITH_CAPTURED_PAYMENT, payment_consistency_issues(self.order))

    def test_completed_order_cannot_be_cancelled(self):
        self._paid_order()
        for step in (self.order.mark_as_processing, self.order.mark_as_delivered, self.order.complete):
            step()
            self.order.save()

        with self.assertRaises(InvalidOrderTransitionError):
            self.order.cancel("too late")
        self.assertEqual(self.order.status, Order.STATUS_COMPLETED)

    # =====================================================
    # PAYMENT AXIS
    # =====================================================

    def test_refund_requires_completed_payment(self):
        with self.assertRaises(InvalidOrderTransitionError):
            self.order.request_refund()

    def test_refund_round_trip(self):
        self._paid_order()

        self.order.request_refund()
        self.assertEqual(self.order.payment_status, PAYMENT_STATUS_REFUNDING)

        self.order.abort_refund()
        self.assertEqual(self.order.payment_status, PAYMENT_STATUS_COMPLETED)

        self.order.request_refund()
        event = self.order.mark_as_refunded()
        self.order.save()

        self.assertIsInstance(event, OrderRefunded)
        self.assertEqual(event.amount, Decimal("5000.00"))
        refreshed = Order.objects.get(pk=self.order.pk)
        self.assertEqual(refreshed.status, Order.STATUS_REFUNDED)
        self.assertEqual(refreshed.payment_status, PAYMENT_STATUS_REFUNDED)
        self.assertEqual(payment_consistency_issues(refreshed), [])

    def test_fulfilment_without_payment_is_reported(self):
        self.order.status = Order.STATUS_PROCESSING
        self.assertIn(ISSUE_FULFILMENT_WITHOUT_PAYMENT, payment_consistency_issues(self.order))

    # =====================================================
    # PERSISTENCE GUARDS
    # =====================================================

    def test_direct_status_write_cannot_skip_states(self):
        self.order.status = Order.STATUS_COMPLETED
        with self.assertRaises(ValueError):
            self.order.save()

        self.assertEqual(Order.objects.get(pk=self.order.pk).status, Order.STATUS_PENDING)

    def test_money_fields_are_immutable(self):
        self.order.total_amount = Decimal("1.00")
        with self.assertRaises(ValueError):
            self.order.save()

        self.assertEqual(Order.objects.get(pk=self.order.pk).total_amount, Decimal("5000.00"))

    def test_can_transition_table(self):
        self.assertTrue(can_transition(from_status=Order.STATUS_PAID, to_status=Order.STATUS_PROCESSING))
        self.assertTrue(can_transition(from_status=Order.STATUS_PENDING, to_status=Order.STATUS_CANCELLED))
        self.assertTrue(can_transition(from_status=Order.STATUS_CANCELLED, to_status=Order.STATUS_REFUNDED))
        self.assertFalse(can_transition(from_status=Order.STATUS_PENDING, to_status=Order.STATUS_DELIVERED))
        self.assertFalse(can_transition(from_status=Order.STATUS_COMPLETED, to_status=Order.STATUS_CANCELLED))
