# payments/views/robokassa_return.py

"""
Robokassa browser return (SuccessURL / FailURL).

Redirect only: payment state is changed by ResultURL, never here.
"""

from __future__ import annotations

import logging
import uuid
from decimal import InvalidOperation
from urllib.parse import urlparse

from django.conf import settings
from django.shortcuts import redirect
from rest_framework.permissions import AllowAny
from rest_framework.views import APIView

from payments.providers import robokassa
from payments.providers.base import PaymentProviderError

logger = logging.getLogger(__name__)


def _safe_frontend_base() -> str:
    base = (getattr(settings, "FRONTEND_BASE_URL", "") or "").strip()
    if not base:
        base = "http://localhost:5173"

    parsed = urlparse(base)
    if not parsed.scheme or not parsed.netloc:
        logger.warning("Invalid FRONTEND_BASE_URL detected")
        return "http://localhost:5173"

    return base.rstrip("/")


def _order_id_from(params) -> str | None:
    custom = robokassa.shp_params({k: params.get(k) for k in params.keys()})
    for key, value in custom.items():
        if key.lower() == robokassa.ORDER_PARAM.lower():
            try:
                return str(uuid.UUID(value))
            except ValueError:
                return None
    return None


def _order_redirect(order_id: str | None, outcome: str):
    base = _safe_frontend_base()
    if not order_id:
        return redirect(f"{base}/orders")
    return redirect(f"{base}/orders/{order_id}?payment={outcome}")


class RobokassaSuccessView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        params = request.query_params
        order_id = _order_id_from(params)

        try:
            verified = robokassa.verify_success_signature(
                params.get("OutSum"),
                params.get("InvId"),
                params.get("SignatureValue") or "",
                {k: params.get(k) for k in params.keys()},
            )
        except (InvalidOperation, PaymentProviderError, TypeError, ValueError):
            logger.warning("Robokassa success return could not be verified", exc_info=True)
            verified = False

        if not verified:
            logger.warning("Robokassa success return with bad signature", extra={"order_id": order_id})
            return _order_redirect(order_id, "unverified")

        logger.info("Robokassa success return", extra={"order_id": order_id})
        return _order_redirect(order_id, "success")


class RobokassaFailView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        order_id = _order_id_from(request.query_params)
        logger.info("Robokassa fail return", extra={"order_id": order_id})
        return _order_redirect(order_id, "failed")
