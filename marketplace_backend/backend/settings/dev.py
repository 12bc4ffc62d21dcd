# backend/settings/dev.py
"""
PATH: backend/settings/dev.py

LOCAL DEVELOPMENT SETTINGS

- Mini App dev server on :5173 (Vite) plus Telegram web clients for CORS
- Robokassa always in test mode, whatever the env says
- Payment loggers at DEBUG
"""

from __future__ import annotations

from .base import *  # noqa: F403
from .base import LOGGING, PAYMENTS, env  # explicit for Ruff (F405)

DEBUG = True

ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1", ".ngrok-free.app"])

CORS_ALLOWED_ORIGINS = env.list(
    "CORS_ALLOWED_ORIGINS",
    default=["http://localhost:5173", "https://web.telegram.org"],
)

CSRF_TRUSTED_ORIGINS = env.list(
    "CSRF_TRUSTED_ORIGINS", default=["http://localhost:5173"]
)

PAYMENTS = {
    **PAYMENTS,
    "ROBOKASSA": {**PAYMENTS["ROBOKASSA"], "IS_TEST": True},
}

LOGGING["loggers"]["payments"] = {"level": "DEBUG"}
