# payments/urls.py

from django.urls import path
from rest_framework.routers import SimpleRouter

from payments.views import (
    PaymentViewSet,
    RobokassaFailView,
    RobokassaResultView,
    RobokassaSuccessView,
    YooKassaWebhookView,
)

router = SimpleRouter()
router.register(r"", PaymentViewSet, basename="payment")

urlpatterns = [
    path("webhooks/yookassa/", YooKassaWebhookView.as_view(), name="payments-webhook-yookassa"),
    path("webhooks/robokassa/", RobokassaResultView.as_view(), name="payments-webhook-robokassa"),
    path("robokassa/success/", RobokassaSuccessView.as_view(), name="payments-robokassa-success"),
    path("robokassa/fail/", RobokassaFailView.as_view(), name="payments-robokassa-fail"),
] + router.urls
