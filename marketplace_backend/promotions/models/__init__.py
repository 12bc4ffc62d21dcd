from .promo_code import PromoCode, PromoCodeUsage

__all__ = ["PromoCode", "PromoCodeUsage"]
