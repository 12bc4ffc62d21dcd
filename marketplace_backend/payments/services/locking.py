# payments/services/locking.py

"""
Row-lock ordering for Order + Payment.

Every path that locks both rows locks the Order FIRST, then the Payment
(same order as payment creation). Call inside transaction.atomic().
"""

from __future__ import annotations

from orders.models import Order
from payments.models import Payment


def lock_payment_with_order(payment_id) -> tuple[Payment | None, Order | None]:
    """
    Returns (payment, order) locked in Order -> Payment order,
    or (None, None) when the payment does not exist.
    """
    # order_id never changes after creation, so an unlocked read is enough to find the Order.
    order_id = Payment.objects.filter(pk=payment_id).values_list("order_id", flat=True).first()
    if order_id is None:
        return None, None

    order = Order.objects.select_for_update().get(pk=order_id)
    payment = Payment.objects.select_for_update().get(pk=payment_id)
    payment.order = order
    return payment, order
