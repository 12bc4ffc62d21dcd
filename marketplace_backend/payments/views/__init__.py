from .payment import PaymentViewSet
from .robokassa_return import RobokassaFailView, RobokassaSuccessView
from .telegram_webhook import TelegramWebhookView
from .webhooks import RobokassaResultView, YooKassaWebhookView

__all__ = [
    "PaymentViewSet",
    "RobokassaFailView",
    "RobokassaResultView",
    "RobokassaSuccessView",
    "TelegramWebhookView",
    "YooKassaWebhookView",
]
