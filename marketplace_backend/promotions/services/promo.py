# promotions/services/promo.py

from __future__ import annotations

import logging

from promotions.models import PromoCode, PromoCodeUsage

logger = logging.getLogger(__name__)


def get_promo_code_by_code(code, *, lock: bool = False) -> PromoCode | None:
    normalized = PromoCode.normalize_code(code)
    if not normalized:
        return None

    qs = PromoCode.objects.filter(code=normalized)
    if lock:
        qs = qs.select_for_update()
    return qs.first()


def resolve_applicable_promo(*, code, user) -> PromoCode | None:
    """
    Returns the promo code when it exists and may be used by this user right now.
    Unknown or invalid codes are not an error at checkout: no discount is applied.

    Must run inside transaction.atomic (the promo row is locked so the usage
    cap cannot be overshot by concurrent checkouts).
    """
    promo = get_promo_code_by_code(code, lock=True)
    if promo is None:
        logger.info("Promo code not found", extra={"promo_code": code})
        return None

    if not promo.is_valid_for_user(user):
        logger.info("Promo code not applicable", extra={"promo_code": promo.code})
        return None

    return promo


def record_promo_usage(*, promo: PromoCode, user, discount_amount) -> PromoCodeUsage:
    promo.increment_usage()
    return PromoCodeUsage.objects.create(
        promo_code=promo,
        user=user,
        discount_amount=discount_amount,
    )
