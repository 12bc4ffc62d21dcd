# payments/apps.py

"""
PAYMENTS APP CONFIG

Optional startup hook:
- When PAYMENTS["TELEGRAM"]["REGISTER_WEBHOOK_ON_STARTUP"] is true, the Telegram
  bot webhook is registered once in a background thread. Failure is logged,
  never fatal. The `set_telegram_webhook` management command does the same on demand.
"""

import threading

from django.apps import AppConfig
from django.conf import settings


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        telegram = (getattr(settings, "PAYMENTS", {}) or {}).get("TELEGRAM") or {}
        if not telegram.get("REGISTER_WEBHOOK_ON_STARTUP") or getattr(settings, "TESTING", False):
            return

        from payments.services.telegram_webhook import register_telegram_webhook

        threading.Thread(
            target=register_telegram_webhook,
            name="telegram-webhook-registration",
            daemon=True,
        ).start()
