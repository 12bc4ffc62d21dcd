# orders/services/order_orchestrator.py

"""
ORDER ORCHESTRATOR (APPLICATION SERVICE)

Purpose:
- Convert a buyer's cart into one Order PER SELLER (marketplace fan-out).
- Apply a promo code once against the combined subtotal and split the
  discount evenly across the produced orders, never past an order's subtotal.
- Drive seller/buyer status changes and cancellation with access checks.

Hard rules:
- Money values are computed server-side; frontend never calculates totals.
- The whole cart split runs in ONE DB transaction:
  orders + items + service counters + promo usage + cart clear
  succeed together or rollback together.
- Notifications are written inside savepoints and never fail the checkout.
"""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import transaction

from cart.services.cart import clear_user_cart, get_cart_items
from orders.models import InvalidOrderTransitionError, Order, OrderItem
from orders.services.exceptions import (
    EmptyCartError,
    InvalidOrderStatusError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    OrderServiceError,
)
from orders.services.order_events import publish_order_events
from orders.services.order_lifecycle import SELLER_TARGET_STATES, payment_consistency_issues
from payments.constants import PROVIDERS
from promotions.services.promo import record_promo_usage, resolve_applicable_promo

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _commission_percentage() -> Decimal:
    return Decimal(str(getattr(settings, "MARKETPLACE_COMMISSION_PERCENTAGE", "10") or "10"))


class InvalidPaymentMethodError(OrderServiceError):
    code = "INVALID_PAYMENT_METHOD"


def _normalize_payment_method(method) -> str:
    m = str(method or "").strip().lower()
    if m not in PROVIDERS:
        raise InvalidPaymentMethodError(f"Unsupported payment method: {method!r}")
    return m


def _group_by_seller(cart_items) -> dict:
    """
    seller_id -> (seller, [cart items]), in first-seen cart order.
    """
    groups: dict = {}
    for item in cart_items:
        seller = item.service.seller
        groups.setdefault(seller.pk, (seller, []))[1].append(item)
    return groups


def _line_total(item) -> Decimal:
    return _money(_money(item.service.price) * Decimal(int(item.quantity)))


def split_discount(total, parts: int, caps=None) -> list[Decimal]:
    """
    Even split in cents; the remainder lands on the last open share.

    With `caps` (one per share, usually each order's sub_total) no share
    exceeds its cap: the excess is spread over the shares that still have
    room, and whatever no share can absorb is dropped. Without caps the
    shares always add up to `total` exactly.
    """
    total = _money(total)
    if parts <= 0:
        return []

    caps = [_money(c) for c in caps] if caps is not None else [total] * parts
    remaining = min(total, _money(sum(caps, Decimal("0.00"))))

    shares = [Decimal("0.00")] * parts
    open_idx = [i for i in range(parts) if caps[i] > 0]

    while remaining > 0 and open_idx:
        n = len(open_idx)
        per = (remaining / Decimal(n)).quantize(TWOPLACES, rounding=ROUND_DOWN)
        wanted = [per] * n
        wanted[-1] = _money(remaining - per * (n - 1))

        for i, want in zip(open_idx, wanted):
            give = min(want, caps[i] - shares[i])
            shares[i] += give
            remaining -= give

        open_idx = [i for i in open_idx if shares[i] < caps[i]]

    return [_money(s) for s in shares]


# ============================================================
# CART -> ORDERS
# ============================================================


@transaction.atomic
def create_orders_from_cart(
    *,
    buyer,
    payment_method: str,
    promo_code: str | None = None,
    notes: str | None = None,
) -> list[Order]:
    cart_items = get_cart_items(user=buyer, lock=True)
    if not cart_items:
        raise EmptyCartError("Cart is empty")

    method = _normalize_payment_method(payment_method)
    groups = _group_by_seller(cart_items)

    combined_subtotal = _money(sum((_line_total(i) for i in cart_items), Decimal("0.00")))

    promo = None
    discount_total = Decimal("0.00")
    if promo_code:
        promo = resolve_applicable_promo(code=promo_code, user=buyer)
        if promo is not None:
            discount_total = promo.calculate_discount(combined_subtotal)

    sub_totals = [
        _money(sum((_line_total(i) for i in lines), Decimal("0.00"))) for _, lines in groups.values()
    ]
    shares = split_discount(discount_total, len(groups), caps=sub_totals)
    discount_applied = _money(sum(shares, Decimal("0.00")))
    commission_pct = _commission_percentage()

    orders: list[Order] = []
    events = []

    for (seller, lines), sub_total, discount_share in zip(groups.values(), sub_totals, shares):
        order, created = Order.place(
            buyer=buyer,
            seller=seller,
            sub_total=sub_total,
            commission_percentage=commission_pct,
            payment_method=method,
            discount_amount=discount_share,
            promo_code=promo.code if promo else "",
            notes=(notes or "").strip(),
        )

        for item in lines:
            service = item.service
            OrderItem.objects.create(
                order=order,
                service=service,
                service_title=service.title,
                service_description=service.description,
                quantity=int(item.quantity),
                unit_price=_money(service.price),
                total_price=_line_total(item),
            )
            service.increment_order_count()

        orders.append(order)
        events.append(created)

    if promo is not None:
        record_promo_usage(promo=promo, user=buyer, discount_amount=discount_applied)

    clear_user_cart(user=buyer)

    publish_order_events(events)

    logger.info(
        "Cart converted to orders",
        extra={
            "buyer_id": str(buyer.pk),
            "order_ids": [str(o.id) for o in orders],
            "discount": str(discount_applied),
        },
    )
    return orders


def create_from_cart(
    *,
    buyer,
    payment_method: str,
    promo_code: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Single-order contract: returns the first order of the checkout.
    Use create_orders_from_cart() to get every per-seller order.
    """
    orders = create_orders_from_cart(
        buyer=buyer,
        payment_method=payment_method,
        promo_code=promo_code,
        notes=notes,
    )
    return orders[0]


# ============================================================
# READS
# ============================================================


def _order_queryset():
    return Order.objects.select_related("buyer", "seller").prefetch_related("items")


def get_order_for_actor(*, order_id, actor) -> Order:
    order = _order_queryset().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")

    if actor.pk not in (order.buyer_id, order.seller_id):
        raise OrderAccessDeniedError("You are not a party to this order")

    return order


def buyer_orders(*, buyer):
    return _order_queryset().filter(buyer=buyer)


def seller_orders(*, seller):
    return _order_queryset().filter(seller=seller)


# ============================================================
# PAYMENT CONFIRMATION
# ============================================================


def mark_order_paid(*, order: Order) -> Order:
    """
    Called by payment reconciliation once money is captured.
    Caller holds the transaction (and the Order + Payment row locks).
    """
    paid = order.mark_as_paid()
    order.save()
    publish_order_events([paid])

    logger.info("Order marked as paid", extra={"order_id": str(order.id)})
    return order


# ============================================================
# STATUS UPDATES (SELLER)
# ============================================================

_SELLER_TRANSITIONS = {
    Order.STATUS_PROCESSING: Order.mark_as_processing,
    Order.STATUS_DELIVERED: Order.mark_as_delivered,
    Order.STATUS_COMPLETED: Order.complete,
}


@transaction.atomic
def update_order_status(*, order_id, actor, new_status: str) -> Order:
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")

    if order.seller_id != actor.pk:
        raise OrderAccessDeniedError("Only the seller can update the order status")

    target = str(new_status or "").strip().lower()
    if target not in SELLER_TARGET_STATES:
        raise InvalidOrderStatusError(f"Status '{new_status}' cannot be set by the seller")

    try:
        event = _SELLER_TRANSITIONS[target](order)
    except InvalidOrderTransitionError as exc:
        raise InvalidOrderStatusError(str(exc)) from exc

    order.save()
    publish_order_events([event])

    logger.info(
        "Order status updated",
        extra={"order_id": str(order.id), "status": order.status},
    )
    return _order_queryset().get(pk=order.pk)


# ============================================================
# CANCELLATION (BUYER OR SELLER)
# ============================================================


@transaction.atomic
def cancel_order(*, order_id, actor, reason: str = "") -> dict:
    """
    Cancels the order and reports whether captured money still needs a refund.
    Cancelling never moves money by itself.
    """
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")

    if actor.pk not in (order.buyer_id, order.seller_id):
        raise OrderAccessDeniedError("Only the buyer or the seller can cancel the order")

    event = order.cancel(reason, cancelled_by=actor)

    issues = payment_consistency_issues(order)
    if event.refund_required:
        logger.warning(
            "Order cancelled with captured payment; refund required",
            extra={"order_id": str(order.id), "issues": issues},
        )

    order.save()
    publish_order_events([event])

    return {
        "order_id": order.id,
        "status": order.status,
        "refund_required": event.refund_required,
    }
