"""Django settings for the shop web process.

Every value can be overridden through an environment variable of the same
name. Adapter and resilience settings are read lazily with ``getattr`` by the
checkout app, so tests can override them with the ``settings`` fixture.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-secret-key")
DEBUG = _bool("DJANGO_DEBUG", "0")
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "rest_framework",
    "apps.checkout",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "shop.urls"
WSGI_APPLICATION = "shop.wsgi.application"

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "shop"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "shop"),
            "HOST": os.getenv("POSTGRES_HOST", "web-db"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

SESSION_COOKIE_AGE = 60 * 60 * 24  # one day, like the old express-session cookie

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ["rest_framework.authentication.SessionAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "checkout": os.getenv("THROTTLE_CHECKOUT", "30/min"),
        "payments": os.getenv("THROTTLE_PAYMENTS", "30/min"),
    },
}

# ---- Checkout adapters ----
USE_HTTP_ADAPTERS = _bool("USE_HTTP_ADAPTERS", "1")
INVENTORY_BASE_URL = os.getenv("INVENTORY_BASE_URL", "http://inventory:9001")

NETS_API_URL = os.getenv("NETS_API_URL", "https://sandbox.nets.openapipaas.com")
NETS_API_KEY = os.getenv("NETS_API_KEY", "")
NETS_PROJECT_ID = os.getenv("NETS_PROJECT_ID", "")
NETS_TXN_ID = os.getenv("NETS_TXN_ID", "sandbox_nets|m|8ff8e5b6-d43e-4786-8ac5-7accf8c5bd9b")

CARD_API_URL = os.getenv("CARD_API_URL", "https://api-m.sandbox.paypal.com")
CARD_CLIENT_ID = os.getenv("CARD_CLIENT_ID", "")
CARD_CLIENT_SECRET = os.getenv("CARD_CLIENT_SECRET", "")
CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "SGD")

STOCK_COMPENSATE_ON_FAILURE = _bool("STOCK_COMPENSATE_ON_FAILURE", "1")

# ---- Resilience ----
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "5"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

# ---- Logging ----
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
}
