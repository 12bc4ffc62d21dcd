# payments/providers/robokassa.py

"""
ROBOKASSA CLIENT (CARD GATEWAY, SIGNED REDIRECT)

No network calls. The payment URL is signed locally and the provider
reaches us through ResultURL (server-to-server) and Success/Fail URLs
(browser return).

Signatures (md5, lowercase hex):
- payment:  MerchantLogin:OutSum:InvId:Password1[:Shp_k=v...]
- result:   OutSum:InvId:Password2[:Shp_k=v...]
- success:  OutSum:InvId:Password1[:Shp_k=v...]
Custom params are sorted by key.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from urllib.parse import urlencode

from payments.constants import PROVIDER_ROBOKASSA
from payments.providers.base import PaymentProviderError, format_amount, provider_setting

logger = logging.getLogger(__name__)

CONFIG_NAME = "ROBOKASSA"
DEFAULT_PAYMENT_URL = "https://auth.robokassa.ru/Merchant/Index.aspx"
SHP_PREFIX = "Shp_"
ORDER_PARAM = "Shp_orderId"


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def _is_test() -> bool:
    return provider_setting(CONFIG_NAME, "IS_TEST", "true").lower() in ("1", "true", "yes", "on")


def _credential(key: str) -> str:
    value = provider_setting(CONFIG_NAME, key)
    if not value:
        raise PaymentProviderError(f"Robokassa {key} is not configured", provider=PROVIDER_ROBOKASSA)
    return value


def shp_params(params: dict | None) -> dict:
    """
    Keep only Shp_* params (case-insensitive prefix), as strings.
    """
    return {
        str(k): str(v)
        for k, v in (params or {}).items()
        if str(k).lower().startswith(SHP_PREFIX.lower())
    }


def _signature_base(parts: list[str], custom_params: dict | None) -> str:
    base = ":".join(parts)
    custom = shp_params(custom_params)
    if custom:
        base += ":" + ":".join(f"{k}={custom[k]}" for k in sorted(custom))
    return base


def _matches(expected: str, received: str) -> bool:
    return hmac.compare_digest(expected.lower(), str(received or "").strip().lower())


def payment_signature(out_sum, inv_id, custom_params: dict | None = None) -> str:
    base = _signature_base(
        [_credential("MERCHANT_LOGIN"), format_amount(out_sum), str(inv_id), _credential("PASSWORD1")],
        custom_params,
    )
    return _md5(base)


def build_payment_url(*, amount, inv_id, description: str, custom_params: dict | None = None) -> str:
    custom = shp_params(custom_params)

    query = {
        "MerchantLogin": _credential("MERCHANT_LOGIN"),
        "OutSum": format_amount(amount),
        "InvId": str(inv_id),
        "Description": description or "",
        "SignatureValue": payment_signature(amount, inv_id, custom),
        "Culture": "ru",
    }
    if _is_test():
        query["IsTest"] = "1"
    query.update(custom)

    base_url = provider_setting(CONFIG_NAME, "PAYMENT_URL", DEFAULT_PAYMENT_URL)
    return f"{base_url}?{urlencode(query)}"


def result_signature(out_sum, inv_id, custom_params: dict | None = None) -> str:
    base = _signature_base(
        [format_amount(out_sum), str(inv_id), _credential("PASSWORD2")],
        custom_params,
    )
    return _md5(base)


def verify_result_signature(out_sum, inv_id, signature_value: str, custom_params: dict | None = None) -> bool:
    expected = result_signature(out_sum, inv_id, custom_params)
    ok = _matches(expected, signature_value)
    if not ok:
        logger.warning("Invalid Robokassa result signature", extra={"inv_id": str(inv_id)})
    return ok


def verify_success_signature(out_sum, inv_id, signature_value: str, custom_params: dict | None = None) -> bool:
    base = _signature_base(
        [format_amount(out_sum), str(inv_id), _credential("PASSWORD1")],
        custom_params,
    )
    return _matches(_md5(base), signature_value)
