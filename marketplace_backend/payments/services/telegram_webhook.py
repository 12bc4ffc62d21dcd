# payments/services/telegram_webhook.py

"""
Telegram bot webhook registration (startup / maintenance task).

Idempotent: Telegram simply overwrites the previous URL.
Never raises; failures are logged and reported as False.
"""

from __future__ import annotations

import logging

from payments.providers import telegram_stars
from payments.providers.base import PaymentProviderError, provider_setting

logger = logging.getLogger(__name__)


def configured_webhook_url() -> str:
    return provider_setting(telegram_stars.CONFIG_NAME, "WEBHOOK_URL")


def register_telegram_webhook() -> bool:
    url = configured_webhook_url()
    if not url:
        logger.warning("Telegram webhook URL not configured; skipping registration")
        return False

    try:
        telegram_stars.set_webhook(url=url)
    except PaymentProviderError:
        logger.exception("Telegram webhook registration failed", extra={"url": url})
        return False

    logger.info("Telegram webhook registered", extra={"url": url})
    return True


def unregister_telegram_webhook() -> bool:
    try:
        telegram_stars.delete_webhook()
    except PaymentProviderError:
        logger.exception("Telegram webhook removal failed")
        return False

    logger.info("Telegram webhook removed")
    return True
