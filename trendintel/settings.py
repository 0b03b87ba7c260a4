"""
Django settings for the trendintel ETL engine.

- Loads secrets and tuning knobs from environment variables
- Database via DATABASE_URL (postgres in production, sqlite locally)
- No HTTP surface: entry points are management commands
"""

import os
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

# Load .env file if present (for local dev)
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str = "False") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


# =============================================================================
# SECURITY SETTINGS (env-driven)
# =============================================================================

SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY",
    "dev-insecure-key-do-not-use-in-production",
)

DEBUG = _env_bool("DJANGO_DEBUG")

ALLOWED_HOSTS = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# =============================================================================
# APPLICATION DEFINITION
# =============================================================================

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    # trendintel apps
    "trendintel.core",
    "trendintel.etl",
]

MIDDLEWARE: list[str] = []


# =============================================================================
# DATABASE (via DATABASE_URL)
# =============================================================================

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
)

DATABASES = {
    "default": dj_database_url.parse(
        DATABASE_URL,
        conn_max_age=600,
        conn_health_checks=True,
    )
}


# =============================================================================
# INTERNATIONALIZATION
# =============================================================================

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


# =============================================================================
# DEFAULT PRIMARY KEY FIELD TYPE
# =============================================================================

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# =============================================================================
# APIFY (video source)
# =============================================================================

# Off by default so no run spends actor credits by accident
APIFY_ENABLED = _env_bool("APIFY_ENABLED")
APIFY_TOKEN = os.environ.get("APIFY_TOKEN", "")
APIFY_BASE_URL = os.environ.get("APIFY_BASE_URL", "https://api.apify.com")
APIFY_TIKTOK_ACTOR_ID = os.environ.get(
    "APIFY_TIKTOK_ACTOR_ID", "clockworks/tiktok-scraper"
)
APIFY_RUN_TIMEOUT_S = int(os.environ.get("APIFY_RUN_TIMEOUT_S", "180"))


# =============================================================================
# ETL TUNING
# =============================================================================

ETL_BATCH_SIZE = int(os.environ.get("ETL_BATCH_SIZE", "10"))
ETL_INTER_BATCH_DELAY_SECONDS = float(
    os.environ.get("ETL_INTER_BATCH_DELAY_SECONDS", "0.5")
)
ETL_MAX_WORKERS = int(os.environ.get("ETL_MAX_WORKERS", "5"))
ETL_SIMILARITY_MAX_CANDIDATES = int(
    os.environ.get("ETL_SIMILARITY_MAX_CANDIDATES", "200")
)
ETL_REPORT_TOP_N = int(os.environ.get("ETL_REPORT_TOP_N", "10"))


# =============================================================================
# LLM (content analyzer)
# =============================================================================

LLM_DISABLED = _env_bool("LLM_DISABLED")
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
TRENDINTEL_LLM_MODEL = os.environ.get("TRENDINTEL_LLM_MODEL", "gpt-4o-mini")
TRENDINTEL_LLM_TIMEOUT = float(os.environ.get("TRENDINTEL_LLM_TIMEOUT", "30"))


# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "trendintel": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
