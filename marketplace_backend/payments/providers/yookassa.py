# payments/providers/yookassa.py

"""
YOOKASSA CLIENT (CARD GATEWAY, REDIRECT FLOW)

- Auth: HTTP Basic shop_id:secret_key
- Every mutating call carries an Idempotence-Key header
- Payments are created with capture=true (single-stage)
"""

from __future__ import annotations

import logging

from payments.constants import (
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_WAITING_FOR_CAPTURE,
    PROVIDER_YOOKASSA,
)
from payments.providers.base import (
    PaymentProviderError,
    basic_auth_header,
    format_amount,
    provider_setting,
    request_json,
)

logger = logging.getLogger(__name__)

CONFIG_NAME = "YOOKASSA"
DEFAULT_API_BASE = "https://api.yookassa.ru/v3"

# provider status -> internal PaymentStatus (None = no change)
STATUS_MAP = {
    "pending": None,
    "waiting_for_capture": PAYMENT_STATUS_WAITING_FOR_CAPTURE,
    "succeeded": PAYMENT_STATUS_COMPLETED,
    "canceled": PAYMENT_STATUS_CANCELLED,
}


def _api_base() -> str:
    return provider_setting(CONFIG_NAME, "API_BASE", DEFAULT_API_BASE).rstrip("/")


def _headers(idempotence_key: str | None = None) -> dict:
    shop_id = provider_setting(CONFIG_NAME, "SHOP_ID")
    secret_key = provider_setting(CONFIG_NAME, "SECRET_KEY")
    if not shop_id or not secret_key:
        raise PaymentProviderError("YooKassa credentials are not configured", provider=PROVIDER_YOOKASSA)

    headers = {"Authorization": basic_auth_header(shop_id, secret_key)}
    if idempotence_key:
        headers["Idempotence-Key"] = str(idempotence_key)
    return headers


def map_status(provider_status: str | None) -> str | None:
    status = str(provider_status or "").strip().lower()
    if status not in STATUS_MAP:
        logger.warning("Unknown YooKassa payment status", extra={"provider_status": status})
        return None
    return STATUS_MAP[status]


def create_payment(
    *,
    amount,
    currency: str,
    description: str,
    return_url: str,
    idempotence_key: str,
    metadata: dict | None = None,
) -> dict:
    """
    Returns {"id", "status", "confirmation_url"}.
    """
    body = {
        "amount": {"value": format_amount(amount), "currency": currency},
        "capture": True,
        "confirmation": {"type": "redirect", "return_url": return_url},
        "description": (description or "")[:128],
        "metadata": metadata or {},
    }

    data = request_json(
        "POST",
        f"{_api_base()}/payments",
        provider=PROVIDER_YOOKASSA,
        body=body,
        headers=_headers(idempotence_key),
    )

    external_id = data.get("id")
    if not external_id:
        raise PaymentProviderError("YooKassa response has no payment id", provider=PROVIDER_YOOKASSA)

    confirmation = data.get("confirmation") or {}
    return {
        "id": str(external_id),
        "status": str(data.get("status") or ""),
        "confirmation_url": str(confirmation.get("confirmation_url") or ""),
    }


def get_payment(external_id: str) -> dict:
    return request_json(
        "GET",
        f"{_api_base()}/payments/{external_id}",
        provider=PROVIDER_YOOKASSA,
        headers=_headers(),
    )


def create_refund(*, external_id: str, amount, currency: str, idempotence_key: str) -> dict:
    """
    Succeeds only on a terminal "succeeded" refund; anything else raises.
    """
    data = request_json(
        "POST",
        f"{_api_base()}/refunds",
        provider=PROVIDER_YOOKASSA,
        body={
            "payment_id": external_id,
            "amount": {"value": format_amount(amount), "currency": currency},
        },
        headers=_headers(idempotence_key),
    )

    refund_status = str(data.get("status") or "").lower()
    if refund_status != "succeeded":
        raise PaymentProviderError(
            f"YooKassa refund not succeeded (status={refund_status or 'unknown'})",
            provider=PROVIDER_YOOKASSA,
        )
    return data
