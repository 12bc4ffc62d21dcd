"""
PATH: backend/settings/base.py

BASE SETTINGS (shared by dev + prod + test)

Marketplace backend (Telegram Mini App):
- Orders split by seller, promo codes, commission
- Payments: YooKassa (cards), Robokassa (cards), Telegram Stars (wallet)
- Sentry (optional): error visibility in production
"""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import environ
from corsheaders.defaults import default_headers, default_methods

# -----------------------------------------
# BASE DIRECTORY
# -----------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# -----------------------------------------
# TEST MODE DETECTION
# -----------------------------------------
TESTING = "test" in sys.argv

# -----------------------------------------
# ENV (django-environ)
# -----------------------------------------
env = environ.Env(
    DEBUG=(bool, True),
    SECRET_KEY=(str, ""),
    TIME_ZONE=(str, "UTC"),
    LOG_LEVEL=(str, "INFO"),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    CORS_ALLOWED_ORIGINS=(list, ["http://localhost:5173"]),
    CSRF_TRUSTED_ORIGINS=(list, ["http://localhost:5173"]),
    DATABASE_URL=(str, f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
    FRONTEND_BASE_URL=(str, "http://localhost:5173"),
    # Marketplace economics
    MARKETPLACE_COMMISSION_PERCENTAGE=(str, "10"),
    MARKETPLACE_CURRENCY=(str, "RUB"),
    # YooKassa
    YOOKASSA_SHOP_ID=(str, ""),
    YOOKASSA_SECRET_KEY=(str, ""),
    YOOKASSA_RETURN_URL=(str, ""),
    YOOKASSA_API_BASE=(str, "https://api.yookassa.ru/v3"),
    # Robokassa
    ROBOKASSA_MERCHANT_LOGIN=(str, ""),
    ROBOKASSA_PASSWORD1=(str, ""),
    ROBOKASSA_PASSWORD2=(str, ""),
    ROBOKASSA_IS_TEST=(bool, True),
    ROBOKASSA_PAYMENT_URL=(str, "https://auth.robokassa.ru/Merchant/Index.aspx"),
    # Telegram bot / Stars
    TELEGRAM_BOT_TOKEN=(str, ""),
    TELEGRAM_BOT_USERNAME=(str, ""),
    TELEGRAM_WEBAPP_URL=(str, ""),
    TELEGRAM_WEBHOOK_URL=(str, ""),
    TELEGRAM_STARS_RATE=(str, "1.5"),
    TELEGRAM_REGISTER_WEBHOOK_ON_STARTUP=(bool, False),
    # Outbound provider calls
    PAYMENT_PROVIDER_TIMEOUT=(int, 15),
    # Sentry (optional; enable by setting SENTRY_DSN)
    SENTRY_DSN=(str, ""),
    SENTRY_ENVIRONMENT=(str, "development"),
    SENTRY_TRACES_SAMPLE_RATE=(float, 0.0),
    SENTRY_SEND_PII=(bool, False),
)

# -----------------------------------------
# LOAD .env
# -----------------------------------------
env_file_1 = BASE_DIR / ".env"
env_file_2 = BASE_DIR.parent / ".env"

if env_file_1.exists():
    env.read_env(str(env_file_1))
elif env_file_2.exists():
    env.read_env(str(env_file_2))

# -----------------------------------------
# CORE SECURITY
# -----------------------------------------
SECRET_KEY = (env("SECRET_KEY") or "dev-insecure-change-me").strip()
DEBUG = env.bool("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS")

# -----------------------------------------
# I18N / TZ
# -----------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = (env("TIME_ZONE") or "UTC").strip()
USE_I18N = True
USE_TZ = True

# -----------------------------------------
# AUTH USER MODEL (custom, Telegram identity)
# -----------------------------------------
AUTH_USER_MODEL = "users.User"

# -----------------------------------------
# INSTALLED APPS
# -----------------------------------------
INSTALLED_APPS = [
    "corsheaders",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "django_filters",
    "users.apps.UsersConfig",
    "catalog.apps.CatalogConfig",
    "cart.apps.CartConfig",
    "promotions.apps.PromotionsConfig",
    "notifications.apps.NotificationsConfig",
    "orders.apps.OrdersConfig",
    "payments.apps.PaymentsConfig",
]

# -----------------------------------------
# MIDDLEWARE
# -----------------------------------------
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "backend.urls"
WSGI_APPLICATION = "backend.wsgi.application"
APPEND_SLASH = True

# -----------------------------------------
# TEMPLATES (DRF browsable API + swagger)
# -----------------------------------------
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
            ],
        },
    }
]

# -----------------------------------------
# REST FRAMEWORK
# -----------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_FILTER_BACKENDS": ("django_filters.rest_framework.DjangoFilterBackend",),
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

# -----------------------------------------
# SIMPLE JWT
# -----------------------------------------
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "USER_ID_FIELD": "id",
}

# -----------------------------------------
# DATABASE
# -----------------------------------------
DATABASES = {
    "default": env.db("DATABASE_URL"),
}

# -----------------------------------------
# FRONTEND BASE URL (Mini App)
# -----------------------------------------
FRONTEND_BASE_URL = (env("FRONTEND_BASE_URL") or "http://localhost:5173").strip()

# -----------------------------------------
# MARKETPLACE
# -----------------------------------------
MARKETPLACE_COMMISSION_PERCENTAGE = (
    env("MARKETPLACE_COMMISSION_PERCENTAGE") or "10"
).strip()
MARKETPLACE_CURRENCY = (env("MARKETPLACE_CURRENCY") or "RUB").strip()

# -----------------------------------------
# PAYMENTS
# -----------------------------------------
PAYMENTS = {
    "YOOKASSA": {
        "SHOP_ID": (env("YOOKASSA_SHOP_ID") or "").strip(),
        "SECRET_KEY": (env("YOOKASSA_SECRET_KEY") or "").strip(),
        "RETURN_URL": (env("YOOKASSA_RETURN_URL") or "").strip(),
        "API_BASE": (env("YOOKASSA_API_BASE") or "").strip(),
    },
    "ROBOKASSA": {
        "MERCHANT_LOGIN": (env("ROBOKASSA_MERCHANT_LOGIN") or "").strip(),
        "PASSWORD1": (env("ROBOKASSA_PASSWORD1") or "").strip(),
        "PASSWORD2": (env("ROBOKASSA_PASSWORD2") or "").strip(),
        "IS_TEST": env.bool("ROBOKASSA_IS_TEST"),
        "PAYMENT_URL": (env("ROBOKASSA_PAYMENT_URL") or "").strip(),
    },
    "TELEGRAM": {
        "BOT_TOKEN": (env("TELEGRAM_BOT_TOKEN") or "").strip(),
        "BOT_USERNAME": (env("TELEGRAM_BOT_USERNAME") or "").strip(),
        "WEBAPP_URL": (env("TELEGRAM_WEBAPP_URL") or "").strip(),
        "WEBHOOK_URL": (env("TELEGRAM_WEBHOOK_URL") or "").strip(),
        "STARS_RATE": (env("TELEGRAM_STARS_RATE") or "1.5").strip(),
        "REGISTER_WEBHOOK_ON_STARTUP": env.bool("TELEGRAM_REGISTER_WEBHOOK_ON_STARTUP"),
    },
    "TIMEOUT": env.int("PAYMENT_PROVIDER_TIMEOUT"),
}

# -----------------------------------------
# LOGGING
# -----------------------------------------
LOG_LEVEL = (env("LOG_LEVEL") or "INFO").strip().upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "orders": {"level": LOG_LEVEL},
        "payments": {"level": LOG_LEVEL},
        "notifications": {"level": LOG_LEVEL},
    },
}

# -----------------------------------------
# SENTRY (optional)
# -----------------------------------------
SENTRY_DSN = (env("SENTRY_DSN") or "").strip()
SENTRY_ENVIRONMENT = (env("SENTRY_ENVIRONMENT") or "development").strip()
SENTRY_TRACES_SAMPLE_RATE = float(env("SENTRY_TRACES_SAMPLE_RATE"))
SENTRY_SEND_PII = env.bool("SENTRY_SEND_PII")

if SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        integrations=[DjangoIntegration()],
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=SENTRY_SEND_PII,
    )

# -----------------------------------------
# CORS / CSRF
# -----------------------------------------
CORS_ALLOWED_ORIGINS = env.list("CORS_ALLOWED_ORIGINS")
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_METHODS = list(default_methods)
CORS_ALLOW_HEADERS = list(default_headers)

CSRF_TRUSTED_ORIGINS = env.list("CSRF_TRUSTED_ORIGINS")

# -----------------------------------------
# STATIC FILES
# -----------------------------------------
STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------
# SWAGGER
# -----------------------------------------
SPECTACULAR_SETTINGS = {
    "TITLE": "Marketplace Backend API",
    "DESCRIPTION": "Orders, payments (YooKassa / Robokassa / Telegram Stars) and refunds",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}
