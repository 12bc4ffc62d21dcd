# payments/providers/base.py

"""
PROVIDER ADAPTER PLUMBING

- provider_cfg(): settings.PAYMENTS[<NAME>] with env-var fallback
- request_json(): JSON over urllib with a bounded timeout
- every transport / protocol failure becomes PaymentProviderError;
  urllib exception types never leave this module
"""

from __future__ import annotations

import base64
import json
import logging
import os
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


class PaymentProviderError(RuntimeError):
    """
    A provider call failed (network, HTTP status, malformed or non-success body).
    """

    code = "PAYMENT_ERROR"

    def __init__(self, message: str, *, provider: str = "", status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


def provider_cfg(name: str) -> dict:
    """
    Priority:
    1) settings.PAYMENTS[name]
    2) env vars named <NAME>_<KEY> (read by provider_setting)
    """
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get(name) if isinstance(payments, dict) else None
    return cfg if isinstance(cfg, dict) else {}


def provider_setting(name: str, key: str, default: str = "") -> str:
    value = provider_cfg(name).get(key)
    if value in (None, ""):
        value = os.environ.get(f"{name}_{key}", default)
    return str(value if value is not None else "").strip()


def provider_timeout() -> int:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    try:
        return int(payments.get("TIMEOUT") or DEFAULT_TIMEOUT)
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT


def format_amount(amount) -> str:
    """
    Decimal -> "1234.50" (provider wire format, always 2 decimals).
    """
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def _safe_preview(text: str, limit: int = 500) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + " ...(truncated)"


def _parse_json(raw: str):
    try:
        return json.loads(raw or "")
    except ValueError:
        return None


def _error_message(parsed, fallback: str) -> str:
    if isinstance(parsed, dict):
        return str(
            parsed.get("description")
            or parsed.get("message")
            or parsed.get("error")
            or fallback
        )
    return fallback


def request_json(
    method: str,
    url: str,
    *,
    provider: str,
    body: dict | None = None,
    headers: dict | None = None,
    timeout: int | None = None,
) -> dict[str, Any]:
    data = None
    if body is not None:
        data = json.dumps(body, ensure_ascii=False).encode("utf-8")

    req = Request(
        url,
        data=data,
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        },
        method=method,
    )

    try:
        with urlopen(req, timeout=timeout or provider_timeout()) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except HTTPError as e:
        raw = e.read().decode("utf-8", errors="replace") if e.fp is not None else ""
        parsed = _parse_json(raw)
        message = _error_message(parsed, _safe_preview(raw) or str(e))
        logger.warning(
            "Provider rejected request",
            extra={"provider": provider, "status_code": e.code, "url": url},
        )
        raise PaymentProviderError(
            f"{provider} HTTPError: {e.code} {message}",
            provider=provider,
            status_code=e.code,
        ) from e
    except (URLError, TimeoutError, OSError) as e:
        logger.warning("Provider unreachable", extra={"provider": provider, "url": url})
        raise PaymentProviderError(f"{provider} request failed: {e}", provider=provider) from e

    parsed = _parse_json(raw)
    if not isinstance(parsed, dict):
        raise PaymentProviderError(
            f"{provider} returned non-JSON: {_safe_preview(raw)}",
            provider=provider,
        )

    return parsed
