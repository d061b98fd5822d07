"""
Settings for the marketplace settlement service.

One module serves every environment; values come from the process
environment (or an env file for local work) through django-environ.

    ENV_FILE=.env.production celery -A config worker

Local runs fall back to sqlite and a Redis on localhost. Settlement tuning
knobs are grouped under "Settlement" below and are all optional.
"""

import os
from datetime import timedelta
from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    CORS_ALLOWED_ORIGINS=(list, []),
    LOG_LEVEL=(str, "INFO"),
)

env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

SECRET_KEY = env("SECRET_KEY", default="django-insecure-settlement-dev-key")
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# =============================================================================
# Settlement
# =============================================================================
# Lowercase ISO 4217 code shared by orders, payments and payouts
SETTLEMENT_CURRENCY = env("SETTLEMENT_CURRENCY", default="ngn")

# Platform share applied when no revenue share scheme matches a product
SETTLEMENT_FALLBACK_PLATFORM_PERCENTAGE = env(
    "SETTLEMENT_FALLBACK_PLATFORM_PERCENTAGE", default="0.05"
)
SETTLEMENT_DEFAULT_SCHEME_CATEGORY = env(
    "SETTLEMENT_DEFAULT_SCHEME_CATEGORY", default="default"
)

# Provider processing fee on each payment, reported on the seller balance
SETTLEMENT_PROCESSING_FEE_PERCENTAGE = env(
    "SETTLEMENT_PROCESSING_FEE_PERCENTAGE", default="0.025"
)
SETTLEMENT_MINIMUM_PROCESSING_FEE_CENTS = env.int(
    "SETTLEMENT_MINIMUM_PROCESSING_FEE_CENTS", default=5_000
)
SETTLEMENT_MAXIMUM_PROCESSING_FEE_CENTS = env.int(
    "SETTLEMENT_MAXIMUM_PROCESSING_FEE_CENTS", default=200_000
)

# Dotted path of the provider used for refund reversals and payout transfers
SETTLEMENT_PAYMENT_PROVIDER = env(
    "SETTLEMENT_PAYMENT_PROVIDER",
    default="settlement.providers.manual.ManualSettlementProvider",
)

DELIVERY_AGENT_COMMISSION_RATE = env("DELIVERY_AGENT_COMMISSION_RATE", default="0.80")
SHIPMENT_DEFAULT_DELIVERY_FEE_CENTS = env.int(
    "SHIPMENT_DEFAULT_DELIVERY_FEE_CENTS", default=100_000
)
SHIPMENT_ESTIMATED_DELIVERY_DAYS = env.int("SHIPMENT_ESTIMATED_DELIVERY_DAYS", default=3)
ORDER_EXPECTED_DELIVERY_DAYS = env.int("ORDER_EXPECTED_DELIVERY_DAYS", default=7)

PAYOUT_SCHEDULE_DELAY_HOURS = env.int("PAYOUT_SCHEDULE_DELAY_HOURS", default=24)
PAYOUT_MAX_RETRIES = env.int("PAYOUT_MAX_RETRIES", default=3)

# Seller lock: TTL of the Redis key, and how long a request waits for it
PAYOUT_LOCK_TTL = env.int("PAYOUT_LOCK_TTL", default=30)
PAYOUT_LOCK_TIMEOUT = env.float("PAYOUT_LOCK_TIMEOUT", default=10.0)

# =============================================================================
# Apps and request pipeline
# =============================================================================
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "corsheaders",
    "django_celery_beat",
    "drf_spectacular",
    "core",
    "settlement",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# Only the admin renders templates
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
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

CORS_ALLOWED_ORIGINS = env("CORS_ALLOWED_ORIGINS")
CORS_ALLOW_CREDENTIALS = True

# =============================================================================
# Storage backends
# =============================================================================
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default=f"sqlite:///{BASE_DIR.parent / 'db.sqlite3'}",
    ),
}
if DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
    DATABASES["default"]["OPTIONS"] = {"connect_timeout": 10}
elif DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3":
    # On disk so threaded tests share one database across connections
    DATABASES["default"]["TEST"] = {"NAME": str(BASE_DIR.parent / "test_db.sqlite3")}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REDIS_URL = env("REDIS_URL", default="redis://localhost:6379/0")

# settlement.locks talks to this connection directly; cache errors must not
# be ignored there, so IGNORE_EXCEPTIONS only affects cache.get/set
CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": REDIS_URL,
        "OPTIONS": {
            "CLIENT_CLASS": "django_redis.client.DefaultClient",
            "IGNORE_EXCEPTIONS": True,
        },
    }
}

STATIC_URL = env("STATIC_URL", default="/static/")
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"
    },
}

# =============================================================================
# API
# =============================================================================
# Buyers, sellers and delivery agents are plain auth users; is_staff marks
# platform admins
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": f"django.contrib.auth.password_validation.{name}"}
    for name in (
        "UserAttributeSimilarityValidator",
        "MinimumLengthValidator",
        "CommonPasswordValidator",
        "NumericPasswordValidator",
    )
]

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "core.exceptions.api_exception_handler",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": env("THROTTLE_RATE_ANON", default="100/hour"),
        "user": env("THROTTLE_RATE_USER", default="1000/hour"),
    },
}
if DEBUG:
    REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"].append(
        "rest_framework.renderers.BrowsableAPIRenderer"
    )

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=env.int("JWT_ACCESS_MINUTES", default=60)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=env.int("JWT_REFRESH_DAYS", default=7)),
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Marketplace Settlement API",
    "DESCRIPTION": "Orders, shipments, refunds and seller payouts",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SCHEMA_PATH_PREFIX": r"/api/v[0-9]+",
    "COMPONENT_SPLIT_REQUEST": True,
    "SECURITY": [{"Bearer": []}],
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "Bearer": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
        }
    },
}

# =============================================================================
# Celery
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://localhost:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default=CELERY_BROKER_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# =============================================================================
# Logging
# =============================================================================
# Each process (web, celery-worker, celery-beat) sets its own LOG_FILE_NAME
LOG_LEVEL = env("LOG_LEVEL")
LOG_DIR = BASE_DIR / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)

_HANDLERS = ["console", "file"]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
        "file": {
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "console"},
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / env("LOG_FILE_NAME", default="settlement.log"),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "file",
            "encoding": "utf-8",
        },
    },
    "root": {"handlers": _HANDLERS, "level": LOG_LEVEL},
    "loggers": {
        name: {"handlers": _HANDLERS, "level": level, "propagate": False}
        for name, level in (
            ("django", LOG_LEVEL),
            ("django.request", "ERROR"),
            ("celery", LOG_LEVEL),
            ("settlement", LOG_LEVEL),
        )
    },
}

if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SECURE_SSL_REDIRECT = env.bool("SECURE_SSL_REDIRECT", default=False)
    SECURE_HSTS_SECONDS = env.int("SECURE_HSTS_SECONDS", default=0)
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SESSION_COOKIE_SECURE = env.bool("SESSION_COOKIE_SECURE", default=True)
    CSRF_COOKIE_SECURE = env.bool("CSRF_COOKIE_SECURE", default=True)
    X_FRAME_OPTIONS = "DENY"
