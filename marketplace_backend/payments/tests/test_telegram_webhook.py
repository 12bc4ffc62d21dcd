from io import StringIO
from unittest import mock

from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, override_settings

from payments.providers.base import PaymentProviderError
from payments.services.telegram_webhook import register_telegram_webhook


class TelegramWebhookRegistrationTests(SimpleTestCase):
    @mock.patch("payments.providers.telegram_stars.set_webhook", return_value=True)
    def test_register_uses_configured_url(self, set_webhook):
        self.assertTrue(register_telegram_webhook())
        set_webhook.assert_called_once_with(url="https://api.example.test/api/telegram/webhook/")

    @mock.patch(
        "payments.providers.telegram_stars.set_webhook",
        side_effect=PaymentProviderError("Unauthorized", provider="telegram_stars"),
    )
    def test_register_failure_is_reported_not_raised(self, set_webhook):
        self.assertFalse(register_telegram_webhook())

    @override_settings(PAYMENTS={"TELEGRAM": {"BOT_TOKEN": "1:T"}})
    @mock.patch.dict("os.environ", {}, clear=True)
    @mock.patch("payments.providers.telegram_stars.set_webhook")
    def test_missing_url_skips_registration(self, set_webhook):
        self.assertFalse(register_telegram_webhook())
        set_webhook.assert_not_called()

    @mock.patch("payments.providers.telegram_stars.set_webhook", return_value=True)
    def test_command_with_url_override(self, set_webhook):
        out = StringIO()
        call_command("set_telegram_webhook", url="https://other.test/hook/", stdout=out)

        set_webhook.assert_called_once_with(url="https://other.test/hook/")
        self.assertIn("https://other.test/hook/", out.getvalue())

    @mock.patch(
        "payments.providers.telegram_stars.delete_webhook",
        side_effect=PaymentProviderError("Unauthorized", provider="telegram_stars"),
    )
    def test_command_delete_failure(self, delete_webhook):
        with self.assertRaises(CommandError):
            call_command("set_telegram_webhook", delete=True, stdout=StringIO())
