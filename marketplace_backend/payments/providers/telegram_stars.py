# payments/providers/telegram_stars.py

"""
TELEGRAM STARS CLIENT (BOT API)

Bot API envelope: {"ok": bool, "result": ..., "description": "..."}.
ok=false is treated exactly like a transport failure.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal, InvalidOperation

from payments.constants import PROVIDER_TELEGRAM_STARS
from payments.providers.base import PaymentProviderError, provider_setting, request_json

logger = logging.getLogger(__name__)

CONFIG_NAME = "TELEGRAM"
API_BASE = "https://api.telegram.org"
STARS_CURRENCY = "XTR"
DEFAULT_STARS_RATE = "1.5"
ALLOWED_UPDATES = ["pre_checkout_query", "message"]


def _bot_url(method: str) -> str:
    token = provider_setting(CONFIG_NAME, "BOT_TOKEN")
    if not token:
        raise PaymentProviderError("Telegram bot token is not configured", provider=PROVIDER_TELEGRAM_STARS)
    return f"{API_BASE}/bot{token}/{method}"


def _call(method: str, body: dict | None = None):
    data = request_json(
        "POST",
        _bot_url(method),
        provider=PROVIDER_TELEGRAM_STARS,
        body=body or {},
    )
    if data.get("ok") is not True:
        raise PaymentProviderError(
            f"Telegram {method} failed: {data.get('description') or 'unknown error'}",
            provider=PROVIDER_TELEGRAM_STARS,
        )
    return data.get("result")


def stars_rate() -> Decimal:
    raw = provider_setting(CONFIG_NAME, "STARS_RATE", DEFAULT_STARS_RATE)
    try:
        rate = Decimal(raw)
    except (InvalidOperation, ValueError):
        rate = Decimal(DEFAULT_STARS_RATE)
    return rate if rate > 0 else Decimal(DEFAULT_STARS_RATE)


def rub_to_stars(amount) -> int:
    """
    Stars are whole units; always round up so the seller is never short.
    """
    stars = math.ceil(Decimal(str(amount)) / stars_rate())
    return max(int(stars), 1)


def create_invoice_link(*, title: str, description: str, payload: str, stars: int) -> str:
    link = _call(
        "createInvoiceLink",
        {
            "title": (title or "")[:32],
            "description": (description or "")[:255],
            "payload": payload,
            "currency": STARS_CURRENCY,
            "prices": [{"label": (title or "")[:32], "amount": int(stars)}],
        },
    )
    if not link:
        raise PaymentProviderError("Telegram returned an empty invoice link", provider=PROVIDER_TELEGRAM_STARS)
    return str(link)


def answer_pre_checkout_query(*, query_id: str, ok: bool, error_message: str | None = None) -> bool:
    body = {"pre_checkout_query_id": query_id, "ok": bool(ok)}
    if not ok and error_message:
        body["error_message"] = error_message
    return bool(_call("answerPreCheckoutQuery", body))


def refund_star_payment(*, user_id: int, charge_id: str) -> bool:
    result = _call(
        "refundStarPayment",
        {"user_id": int(user_id), "telegram_payment_charge_id": charge_id},
    )
    if result is not True:
        raise PaymentProviderError("Telegram refund was not confirmed", provider=PROVIDER_TELEGRAM_STARS)
    return True


def set_webhook(*, url: str) -> bool:
    logger.info("Setting Telegram webhook", extra={"url": url})
    return bool(_call("setWebhook", {"url": url, "allowed_updates": ALLOWED_UPDATES}))


def delete_webhook() -> bool:
    return bool(_call("deleteWebhook"))
