# cart/services/cart.py

from __future__ import annotations

from cart.models import CartItem


def get_cart_items(*, user, lock: bool = False) -> list[CartItem]:
    """
    Buyer's cart lines with their services (and sellers) preloaded.

    lock=True takes row locks so two concurrent checkouts of the same cart
    serialize; only meaningful inside transaction.atomic.
    """
    qs = CartItem.objects.filter(user=user).select_related("service", "service__seller")
    if lock:
        qs = qs.select_for_update()
    return list(qs.order_by("added_at", "id"))


def clear_user_cart(*, user) -> int:
    deleted, _ = CartItem.objects.filter(user=user).delete()
    return deleted
