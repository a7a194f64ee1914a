"""Django settings for the convenience-store barcode payment service."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_bool(name, default=False):
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-dev-key")
DEBUG = _env_bool("DJANGO_DEBUG")
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "payments.apps.PaymentsConfig",
    "barcodes.apps.BarcodesConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "cvspay.middleware.ApiErrorMiddleware",
]

ROOT_URLCONF = "cvspay.urls"
WSGI_APPLICATION = "cvspay.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": os.getenv("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": os.getenv("DB_USER", ""),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", ""),
        "PORT": os.getenv("DB_PORT", ""),
    }
}

CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "cvspay"),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
# Gateway timestamps (MerchantTradeDate, ExpireDate) are Taiwan local time.
TIME_ZONE = "Asia/Taipei"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

# ---------- Gateway ----------
ECPAY = {
    "MERCHANT_ID": os.getenv("ECPAY_MERCHANT_ID", ""),
    "HASH_KEY": os.getenv("ECPAY_HASH_KEY", ""),
    "HASH_IV": os.getenv("ECPAY_HASH_IV", ""),
    "API_URL": os.getenv("ECPAY_API_URL", "https://payment.ecpay.com.tw/Cashier/AioCheckOut/V5"),
    "QUERY_URL": os.getenv("ECPAY_QUERY_URL", "https://payment.ecpay.com.tw/Cashier/QueryPaymentInfo"),
    "RETURN_URL": os.getenv("ECPAY_RETURN_URL", ""),
    "PAYMENT_INFO_URL": os.getenv("ECPAY_PAYMENT_INFO_URL", ""),
    "TIMEOUT": float(os.getenv("ECPAY_TIMEOUT", "8")),
    "STORE_EXPIRE_DAYS": int(os.getenv("ECPAY_STORE_EXPIRE_DAYS", "7")),
    "BARCODE_READY_SECONDS": int(os.getenv("ECPAY_BARCODE_READY_SECONDS", "60")),
    "ITEM_NAME_MAX_LENGTH": 400,
    "TRADE_DESC": os.getenv("ECPAY_TRADE_DESC", "Convenience store barcode payment"),
}

# ---------- Client-facing payment API ----------
PAYMENTS = {
    "MIN_AMOUNT": 1,
    "MAX_AMOUNT": 6000,
    "DEFAULT_STORE_TYPE": os.getenv("PAYMENTS_DEFAULT_STORE_TYPE", "7ELEVEN"),
    "PUBLIC_BASE_URL": os.getenv("PAYMENTS_PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
    "NOTIFY_TIMEOUT": float(os.getenv("PAYMENTS_NOTIFY_TIMEOUT", "5")),
    "RATE_LIMITER": os.getenv("PAYMENTS_RATE_LIMITER", "payments.ratelimit.CacheRateLimiter"),
    "RATE_LIMIT_WINDOW": int(os.getenv("PAYMENTS_RATE_LIMIT_WINDOW", "60")),
    "DEFAULT_RATE_LIMIT": int(os.getenv("PAYMENTS_DEFAULT_RATE_LIMIT", "100")),
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "payments": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO"), "propagate": False},
        "barcodes": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO"), "propagate": False},
        "cvspay": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO"), "propagate": False},
    },
}
