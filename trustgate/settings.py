"""
Django settings for trustgate project.

환경변수(.env 포함)에서 값을 읽는다. 운영 환경에서는 SECRET_KEY, DATABASE, REDIS_URL, ANTHROPIC_API_KEY 를 반드시 지정한다.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-trustgate-dev-key-change-me-0123456789")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "channels",
    "users",
    "moderation",
    "realtime",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "trustgate.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": ["django.template.context_processors.request"]},
    }
]

ASGI_APPLICATION = "trustgate.asgi.application"

# Database
if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": BASE_DIR / "db.sqlite3"}}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
AUTH_USER_MODEL = "users.User"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

# Cache (썸네일 판정 캐시 등). 운영에서는 Redis 캐시 권장
CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache", "LOCATION": "trustgate"}}

# Redis / Channels
REDIS_URL = os.getenv("REDIS_URL", "")
if REDIS_URL:
    CHANNEL_LAYERS = {"default": {"BACKEND": "channels_redis.core.RedisChannelLayer", "CONFIG": {"hosts": [REDIS_URL]}}}
else:
    CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}

# DRF
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ("rest_framework_simplejwt.authentication.JWTAuthentication",),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SIMPLE_JWT = {
    "ALGORITHM": "HS256",
    "SIGNING_KEY": SECRET_KEY,
    "USER_ID_FIELD": "id",
    "USER_ID_CLAIM": "user_id",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Trustgate Moderation API",
    "DESCRIPTION": "콘텐츠 신뢰/모더레이션 파이프라인 API",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL or "memory://")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", None)
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_EAGER_PROPAGATES = True

# Moderation pipeline
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

MODERATION = {
    # 'anthropic' | 'null' (null 은 항상 ClassifierUnavailable → 폴백 경로)
    "CLASSIFIER_BACKEND": os.getenv("MODERATION_CLASSIFIER_BACKEND", "anthropic" if ANTHROPIC_API_KEY else "null"),
    "CLASSIFIER_MODEL": os.getenv("MODERATION_CLASSIFIER_MODEL", "claude-sonnet-4-20250514"),
    "CLASSIFIER_TIMEOUT": float(os.getenv("MODERATION_CLASSIFIER_TIMEOUT", "20")),
    "CLASSIFIER_RETRIES": int(os.getenv("MODERATION_CLASSIFIER_RETRIES", "1")),
    # 분류기 장애 시 보수적으로(검토 대기) 처리할 콘텐츠 타입
    "FAIL_CLOSED_CONTENT_TYPES": tuple(_env_list("MODERATION_FAIL_CLOSED_CONTENT_TYPES", "video,audio")),
    "THUMBNAIL_CACHE_TTL": int(os.getenv("MODERATION_THUMBNAIL_CACHE_TTL", "3600")),
    "DEFAULT_LOCALE": os.getenv("MODERATION_DEFAULT_LOCALE", "en"),
}

# Logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {"default": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"}},
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "default"}},
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "moderation": {"handlers": ["console"], "level": os.getenv("MODERATION_LOG_LEVEL", "INFO"), "propagate": False},
        "realtime": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
