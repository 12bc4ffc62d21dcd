# payments/views/telegram_webhook.py

"""
Telegram bot webhook.

Always 200 {"ok": true}: the channel is authenticated by Telegram itself and
a non-2xx answer only makes Telegram re-deliver the same update.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.serializers import WebhookAckSerializer
from payments.services.exceptions import PaymentServiceError
from payments.services.payment_orchestrator import handle_telegram_update

logger = logging.getLogger(__name__)


class TelegramWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    @extend_schema(tags=["Payments Webhooks"], request=None, responses={200: WebhookAckSerializer})
    def post(self, request, *args, **kwargs):
        update = request.data if isinstance(request.data, dict) else {}
        update_id = update.get("update_id")

        try:
            detail = handle_telegram_update(update)
        except PaymentServiceError as exc:
            logger.warning(
                "Telegram update rejected",
                extra={"update_id": update_id, "code": exc.code, "reason": str(exc)},
            )
            return Response({"ok": True, "detail": exc.code}, status=status.HTTP_200_OK)
        except Exception:
            logger.exception("Unhandled Telegram update error", extra={"update_id": update_id})
            return Response({"ok": True, "detail": "Unhandled error"}, status=status.HTTP_200_OK)

        logger.info("Telegram update processed", extra={"update_id": update_id, "detail": detail})
        return Response({"ok": True, "detail": detail}, status=status.HTTP_200_OK)
