# backend/responses.py

"""
API ERROR NORMALIZATION

Every client-facing failure is rendered as:

    {"error": {"code": "<STABLE_CODE>", "message": "<human readable>"}}

Service-layer exceptions carry their own `code`; the HTTP status is derived
from it here so views stay thin.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.response import Response

HTTP_STATUS_BY_CODE = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "EMPTY_CART": status.HTTP_400_BAD_REQUEST,
    "INVALID_STATUS": status.HTTP_400_BAD_REQUEST,
    "INVALID_STATE_TRANSITION": status.HTTP_409_CONFLICT,
    "ALREADY_PAID": status.HTTP_409_CONFLICT,
    "INVALID_SIGNATURE": status.HTTP_400_BAD_REQUEST,
    "INVALID_ORDER": status.HTTP_400_BAD_REQUEST,
    "INVALID_PAYLOAD": status.HTTP_400_BAD_REQUEST,
    "AMOUNT_MISMATCH": status.HTTP_400_BAD_REQUEST,
    "PAYMENT_ERROR": status.HTTP_502_BAD_GATEWAY,
    "REFUND_FAILED": status.HTTP_502_BAD_GATEWAY,
    "MANUAL_REFUND_REQUIRED": status.HTTP_409_CONFLICT,
}


def error_response(*, code: str, message: str, http_status: int):
    """
    Canonical API error response.
    """
    return Response(
        {"error": {"code": code, "message": message}},
        status=http_status,
    )


def service_error_response(exc: Exception):
    code = getattr(exc, "code", None) or "ERROR"
    return error_response(
        code=code,
        message=str(exc),
        http_status=HTTP_STATUS_BY_CODE.get(code, status.HTTP_400_BAD_REQUEST),
    )
