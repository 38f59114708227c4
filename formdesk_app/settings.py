"""Django settings for the formdesk project, read from the environment."""

from datetime import timedelta
import os
from pathlib import Path
import sys

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    SECRET_KEY=(str, ""),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    CSRF_TRUSTED_ORIGINS=(list, []),
    CORS_ALLOWED_ORIGINS=(list, []),
    SECURE_SSL_REDIRECT=(bool, False),
    LOG_LEVEL=(str, "INFO"),
    LLM_URL=(str, ""),
    LLM_API_KEY=(str, ""),
    LLM_AUTH_TYPE=(str, "bearer"),
    LLM_MODEL=(str, "llama3.2"),
    LLM_TIMEOUT=(int, 30),
    FORMDESK_ANALYTICS_SAMPLE_LIMIT=(int, 200),
    FORMDESK_SLUG_SAVE_ATTEMPTS=(int, 3),
    FORMDESK_TITLE_SLUGS=(bool, False),
    FORMDESK_TIMER_GRACE_MS=(int, 10_000),
)
if (BASE_DIR / ".env").exists():
    environ.Env.read_env(BASE_DIR / ".env")

# pytest imports settings before any test runs
TESTING = "pytest" in sys.modules or "test" in sys.argv

DEBUG = env("DEBUG")
# A per-process key invalidates sessions and tokens on restart; set one in production
SECRET_KEY = env("SECRET_KEY") or os.urandom(32).hex()
ALLOWED_HOSTS = env("ALLOWED_HOSTS")
CSRF_TRUSTED_ORIGINS = env("CSRF_TRUSTED_ORIGINS")

DATABASES = {"default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}")}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt",
    "formdesk_app.forms",
    "formdesk_app.api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "formdesk_app.urls"
WSGI_APPLICATION = "formdesk_app.wsgi.application"

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
    }
]

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
        "OPTIONS": {"min_length": 12},
    },
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
]

LANGUAGE_CODE = "en-gb"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Security
SECURE_SSL_REDIRECT = env("SECURE_SSL_REDIRECT")
SESSION_COOKIE_SECURE = CSRF_COOKIE_SECURE = not DEBUG
SECURE_HSTS_SECONDS = 0 if DEBUG else 31536000
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# Public form endpoints are embedded on other sites
CORS_ALLOWED_ORIGINS = env("CORS_ALLOWED_ORIGINS")
if DEBUG:
    CORS_ALLOWED_ORIGINS += ["http://localhost:3000", "http://127.0.0.1:3000"]
CORS_URLS_REGEX = r"^/api/public/.*$"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ],
    # Anonymous traffic is mostly public form submissions
    "DEFAULT_THROTTLE_RATES": {"anon": "30/minute", "user": "240/minute"},
}
if TESTING or os.environ.get("PYTEST_CURRENT_TEST"):
    REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=15),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
    "AUTH_HEADER_TYPES": ("Bearer",),
}

# Response insights (chat-completions compatible endpoint)
LLM_URL = env("LLM_URL")
LLM_API_KEY = env("LLM_API_KEY")
LLM_AUTH_TYPE = env("LLM_AUTH_TYPE")  # 'bearer' or 'apim'
LLM_MODEL = env("LLM_MODEL")
LLM_TIMEOUT = env("LLM_TIMEOUT")

# Form engine
FORMDESK_ANALYTICS_SAMPLE_LIMIT = env("FORMDESK_ANALYTICS_SAMPLE_LIMIT")
FORMDESK_SLUG_SAVE_ATTEMPTS = env("FORMDESK_SLUG_SAVE_ATTEMPTS")
FORMDESK_TITLE_SLUGS = env("FORMDESK_TITLE_SLUGS")
FORMDESK_TIMER_GRACE_MS = env("FORMDESK_TIMER_GRACE_MS")

LOG_LEVEL = env("LOG_LEVEL")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "[{levelname}] {asctime} {name} {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "formdesk_app": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
