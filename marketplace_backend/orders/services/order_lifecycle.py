"""
ORDER LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed status moves for Order entities.

Fulfilment path:
    pending -> paid -> processing -> delivered -> completed

Side branches:
- paid:      reachable from any state (payment confirmation re-stamps)
- cancelled: reachable from any state except completed
- refunded:  reachable from any state; guarded by the payment axis instead

DESIGN PRINCIPLES:
- No database writes
- No side effects
- Single source of truth (Order methods and Order.save() both ask here)
"""

from orders.models import InvalidOrderTransitionError, Order
from payments.constants import (
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUS_REFUNDING,
)

# ============================================================
# STATE DEFINITIONS
# ============================================================

ALLOWED_TRANSITIONS = {
    Order.STATUS_PAID: {Order.STATUS_PROCESSING},
    Order.STATUS_PROCESSING: {Order.STATUS_DELIVERED},
    Order.STATUS_DELIVERED: {Order.STATUS_COMPLETED},
}

NON_CANCELLABLE_STATES = {
    Order.STATUS_COMPLETED,
}

# Seller-driven targets accepted by the status update API.
SELLER_TARGET_STATES = {
    Order.STATUS_PROCESSING,
    Order.STATUS_DELIVERED,
    Order.STATUS_COMPLETED,
}


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition(*, from_status: str, to_status: str) -> bool:
    if to_status in (Order.STATUS_PAID, Order.STATUS_REFUNDED):
        return True

    if to_status == Order.STATUS_CANCELLED:
        return from_status not in NON_CANCELLABLE_STATES

    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def validate_transition(*, order: Order, target_status: str):
    if not can_transition(from_status=order.status, to_status=target_status):
        raise InvalidOrderTransitionError(
            f"Order {order.id} cannot transition from "
            f"'{order.status}' to '{target_status}'"
        )


# ============================================================
# CROSS-AXIS CONSISTENCY
# ============================================================

ISSUE_CANCELLED_WITH_CAPTURED_PAYMENT = "cancelled_with_captured_payment"
ISSUE_FULFILMENT_WITHOUT_PAYMENT = "fulfilment_without_payment"
ISSUE_REFUND_STATE_MISMATCH = "refund_state_mismatch"

_FULFILMENT_STATES = {
    Order.STATUS_PAID,
    Order.STATUS_PROCESSING,
    Order.STATUS_DELIVERED,
    Order.STATUS_COMPLETED,
}


def payment_consistency_issues(order: Order) -> list[str]:
    """
    Conditions where status and payment_status disagree.

    A cancelled order whose money is still captured is allowed, but it must
    be surfaced so someone drives the refund.
    """
    issues = []

    if order.status == Order.STATUS_CANCELLED and order.payment_status in (
        PAYMENT_STATUS_COMPLETED,
        PAYMENT_STATUS_REFUNDING,
    ):
        issues.append(ISSUE_CANCELLED_WITH_CAPTURED_PAYMENT)

    if order.status in _FULFILMENT_STATES and order.payment_status not in (
        PAYMENT_STATUS_COMPLETED,
        PAYMENT_STATUS_REFUNDING,
    ):
        issues.append(ISSUE_FULFILMENT_WITHOUT_PAYMENT)

    if (order.status == Order.STATUS_REFUNDED) != (order.payment_status == PAYMENT_STATUS_REFUNDED):
        issues.append(ISSUE_REFUND_STATE_MISMATCH)

    return issues
