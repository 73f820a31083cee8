"""Django settings for the Cloud Vertice core.

Every value is read from the environment with a development default so the
same module serves local runs, tests and the gunicorn deployment. External
integrations are switched between HTTP clients and in-process stubs with
``USE_HTTP_ADAPTERS``.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-cloud-vertice-key")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "rest_framework",
    "apps.common",
    "apps.accounts",
    "apps.catalog",
    "apps.orders",
    "apps.vps",
    "apps.billing",
    "apps.support",
    "apps.metrics",
    "apps.integrations",
    "apps.maintenance",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "gateway.middleware.ActorMiddleware",
]

ROOT_URLCONF = "cloudvertice.urls"
WSGI_APPLICATION = "cloudvertice.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": []},
    }
]

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "app"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "app"),
            "HOST": os.getenv("POSTGRES_HOST", "web-db"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("POSTGRES_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "cloud-vertice",
    }
}

REST_FRAMEWORK = {
    # Authentication happens at the edge; see gateway.middleware.ActorMiddleware
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "EXCEPTION_HANDLER": "gateway.exceptions.api_exception_handler",
    "DEFAULT_THROTTLE_RATES": {
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "600/min"),
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "120/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "600/min"),
        "payments_webhook": os.getenv("THROTTLE_PAYMENTS_WEBHOOK", "1200/min"),
        "vps_actions": os.getenv("THROTTLE_VPS_ACTIONS", "60/min"),
    },
}

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(actor_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "httpx": {"level": "WARNING"},
        "django.db.backends": {"level": "WARNING"},
    },
}

# ---- Integrations ----
USE_HTTP_ADAPTERS = _env_bool("USE_HTTP_ADAPTERS", False)
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "10"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

PAYMENTS_BASE_URL = os.getenv("PAYMENTS_BASE_URL", "http://payments:9002")
PAYMENTS_WEBHOOK_TOKEN = os.getenv("PAYMENTS_WEBHOOK_TOKEN", "dev-webhook-token")

CONTABO_API_BASE = os.getenv("CONTABO_API_BASE", "https://api.contabo.com/v1")
CONTABO_AUTH_URL = os.getenv(
    "CONTABO_AUTH_URL",
    "https://auth.contabo.com/auth/realms/contabo/protocol/openid-connect/token",
)
CONTABO_CLIENT_ID = os.getenv("CONTABO_CLIENT_ID", "")
CONTABO_CLIENT_SECRET = os.getenv("CONTABO_CLIENT_SECRET", "")
CONTABO_API_USER = os.getenv("CONTABO_API_USER", "")
CONTABO_API_PASSWORD = os.getenv("CONTABO_API_PASSWORD", "")

VPS_ENCRYPTION_KEY = os.getenv("VPS_ENCRYPTION_KEY", "")

# ---- Email ----
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
EMAIL_HOST = os.getenv("SMTP_HOST", "localhost")
EMAIL_PORT = int(os.getenv("SMTP_PORT", "587"))
EMAIL_HOST_USER = os.getenv("SMTP_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("SMTP_PASSWORD", "")
EMAIL_USE_TLS = _env_bool("SMTP_USE_TLS", True)
EMAIL_TIMEOUT = int(os.getenv("SMTP_TIMEOUT", "10"))
DEFAULT_FROM_EMAIL = os.getenv("FROM_EMAIL", "Cloud Vertice <noreply@cloud.vertice.com.co>")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# ---- Business defaults ----
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
DEFAULT_TAX_RATE = os.getenv("DEFAULT_TAX_RATE", "0.19")
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "30"))
BILLING_PERIODS = [int(p) for p in os.getenv("BILLING_PERIODS", "1,3,6,12").split(",") if p]
HOME_PRODUCTS_LIMIT = int(os.getenv("HOME_PRODUCTS_LIMIT", "3"))
