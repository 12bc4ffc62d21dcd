# payments/views/webhooks.py

"""
PROVIDER CALLBACKS (SERVER-TO-SERVER)

- YooKassa: always 200 {"ok": true, "detail": ...}; the provider retries on
  anything else and a retry of a rejected event will never succeed.
- Robokassa ResultURL: plain text.
    OK{InvId}          -> accepted
    400 <CODE>         -> typed rejection
    200 ERROR          -> unexpected failure, no ack; Robokassa re-sends
"""

from __future__ import annotations

import logging

from django.http import HttpResponse
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.serializers import WebhookAckSerializer
from payments.services.exceptions import PaymentNotFoundError, PaymentServiceError
from payments.services.payment_orchestrator import (
    handle_robokassa_result,
    handle_yookassa_notification,
)

logger = logging.getLogger(__name__)


class YooKassaWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    @extend_schema(
        tags=["Payments Webhooks"],
        request=None,
        responses={200: WebhookAckSerializer},
    )
    def post(self, request, *args, **kwargs):
        payload = request.data if isinstance(request.data, dict) else {}
        event = str(payload.get("event") or "")
        external_id = str((payload.get("object") or {}).get("id") or "")

        logger.info("YooKassa webhook received", extra={"event": event, "external_id": external_id})

        try:
            detail = handle_yookassa_notification(payload)
        except PaymentNotFoundError:
            logger.warning("YooKassa webhook for unknown payment", extra={"external_id": external_id})
            return Response({"ok": True, "detail": "Unknown payment"}, status=status.HTTP_200_OK)
        except PaymentServiceError as exc:
            logger.warning(
                "YooKassa webhook rejected",
                extra={"external_id": external_id, "code": exc.code, "reason": str(exc)},
            )
            return Response({"ok": True, "detail": exc.code}, status=status.HTTP_200_OK)
        except Exception:
            logger.exception("Unhandled YooKassa webhook error", extra={"external_id": external_id})
            return Response({"ok": True, "detail": "Unhandled error"}, status=status.HTTP_200_OK)

        return Response({"ok": True, "detail": detail}, status=status.HTTP_200_OK)


def _plain(text: str, http_status: int = 200) -> HttpResponse:
    return HttpResponse(text, content_type="text/plain; charset=utf-8", status=http_status)


class RobokassaResultView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [FormParser, MultiPartParser, JSONParser]

    @extend_schema(
        tags=["Payments Webhooks"],
        request=None,
        responses={
            200: OpenApiResponse(description="OK{InvId} (text/plain)"),
            400: OpenApiResponse(description="Rejected callback (text/plain error code)"),
        },
    )
    def post(self, request, *args, **kwargs):
        return self._handle(request.data)

    def get(self, request, *args, **kwargs):
        # Robokassa can be configured to call ResultURL with GET.
        return self._handle(request.query_params)

    def _handle(self, params):
        inv_id = params.get("InvId")
        logger.info("Robokassa result received", extra={"inv_id": inv_id})

        try:
            ack = handle_robokassa_result(
                out_sum=params.get("OutSum"),
                inv_id=inv_id,
                signature_value=params.get("SignatureValue"),
                params={k: params.get(k) for k in params.keys()},
            )
        except PaymentServiceError as exc:
            logger.warning(
                "Robokassa result rejected",
                extra={"inv_id": inv_id, "code": exc.code, "reason": str(exc)},
            )
            return _plain(exc.code, status.HTTP_400_BAD_REQUEST)
        except Exception:
            logger.exception("Unhandled Robokassa result error", extra={"inv_id": inv_id})
            return _plain("ERROR")

        return _plain(ack)
