# backend/settings/test.py
"""
PATH: backend/settings/test.py

TEST SETTINGS

- In-memory SQLite (fast, isolated)
- Fast password hashing
- Deterministic provider credentials (network calls are mocked in tests)
"""

from __future__ import annotations

from .base import *  # noqa: F403
from .base import PAYMENTS  # explicit for Ruff (F405)

DEBUG = False
TESTING = True

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

MARKETPLACE_COMMISSION_PERCENTAGE = "10"
MARKETPLACE_CURRENCY = "RUB"
FRONTEND_BASE_URL = "https://miniapp.example.test"

PAYMENTS = {
    **PAYMENTS,
    "YOOKASSA": {
        "SHOP_ID": "test-shop",
        "SECRET_KEY": "test-secret",
        "RETURN_URL": "https://miniapp.example.test/payment/return",
        "API_BASE": "https://api.yookassa.test/v3",
    },
    "ROBOKASSA": {
        "MERCHANT_LOGIN": "test-merchant",
        "PASSWORD1": "pass-one",
        "PASSWORD2": "pass-two",
        "IS_TEST": True,
        "PAYMENT_URL": "https://auth.robokassa.ru/Merchant/Index.aspx",
    },
    "TELEGRAM": {
        "BOT_TOKEN": "123456:TEST",
        "BOT_USERNAME": "marketplace_test_bot",
        "WEBAPP_URL": "https://miniapp.example.test",
        "WEBHOOK_URL": "https://api.example.test/api/telegram/webhook/",
        "STARS_RATE": "1.5",
        "REGISTER_WEBHOOK_ON_STARTUP": False,
    },
    "TIMEOUT": 5,
}
