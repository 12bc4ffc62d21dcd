# payments/management/commands/set_telegram_webhook.py

"""
Register (or remove) the Telegram bot webhook on demand.

- Uses PAYMENTS["TELEGRAM"]["WEBHOOK_URL"] unless --url is given.
- Safe to re-run; Telegram keeps only the latest URL.
"""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from payments.providers import telegram_stars
from payments.providers.base import PaymentProviderError
from payments.services.telegram_webhook import (
    configured_webhook_url,
    register_telegram_webhook,
    unregister_telegram_webhook,
)


class Command(BaseCommand):
    help = "Register the Telegram bot webhook (or remove it with --delete)."

    def add_arguments(self, parser):
        parser.add_argument("--delete", action="store_true", help="Remove the webhook instead.")
        parser.add_argument("--url", default="", help="Override the configured webhook URL.")

    def handle(self, *args, **options):
        if options["delete"]:
            if not unregister_telegram_webhook():
                raise CommandError("Failed to remove the Telegram webhook (see logs).")
            self.stdout.write(self.style.SUCCESS("Telegram webhook removed."))
            return

        url = (options.get("url") or "").strip()
        if url:
            try:
                telegram_stars.set_webhook(url=url)
            except PaymentProviderError as exc:
                raise CommandError(f"Failed to set Telegram webhook: {exc}") from exc
            self.stdout.write(self.style.SUCCESS(f"Telegram webhook set to {url}"))
            return

        if not configured_webhook_url():
            self.stdout.write(self.style.WARNING("TELEGRAM_WEBHOOK_URL not set. Skipping."))
            return

        if not register_telegram_webhook():
            raise CommandError("Failed to register the Telegram webhook (see logs).")
        self.stdout.write(self.style.SUCCESS(f"Telegram webhook set to {configured_webhook_url()}"))
