import os
from datetime import timedelta
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("SECRET_KEY", os.environ.get("DJANGO_SECRET_KEY", "changeme"))
DEBUG = os.getenv("DEBUG", os.getenv("DJANGO_DEBUG", "True")) == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,.localhost,testserver").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt.token_blacklist",
    "ops.apps.OpsConfig",  # Operations & observability
    "tenant.apps.TenantConfig",  # Host -> tenant resolution (before accounts)
    "accounts.apps.AccountsConfig",
    "tables.apps.TablesConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "ops.metrics.track_request_metrics",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "tenant.middleware.TenantResolutionMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "hive_backend.urls"

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
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "hive_backend.wsgi.application"

# =============================================================================
# Database Configuration
# =============================================================================
DATABASES = {
    "default": dj_database_url.config(
        env="DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
        "OPTIONS": {"min_length": 8},
    },
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "accounts.User"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "EXCEPTION_HANDLER": "tables.exceptions.table_exception_handler",
    "DEFAULT_THROTTLE_RATES": {
        "login": os.getenv("LOGIN_THROTTLE_RATE", "10/minute"),
    },
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=30),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": True,
}

CORS_ALLOWED_ORIGINS = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:3000"
).split(",")

CORS_ALLOW_CREDENTIALS = True

# Export filenames must be readable by the dashboard across origins.
CORS_EXPOSE_HEADERS = ["Content-Disposition", "X-Export-Truncated", "X-Export-Total", "X-Export-Rows"]

CSRF_TRUSTED_ORIGINS = os.getenv(
    "CSRF_TRUSTED_ORIGINS",
    "http://localhost:3000"
).split(",")

# Stale CSRF tokens answer 419 so the dashboard can refresh and retry once.
CSRF_FAILURE_VIEW = "hive_backend.views.csrf_failure"

# =============================================================================
# Tenancy
# =============================================================================
# Hosts that serve the central (non-tenant) workspace.
CENTRAL_DOMAINS = os.getenv("CENTRAL_DOMAINS", "localhost,127.0.0.1,testserver").split(",")

# Accounts that can never be modified, deactivated or deleted.
PROTECTED_USER_ID = int(os.getenv("PROTECTED_USER_ID", "1"))
PROTECTED_ROLE_NAMES = ("Admin", "Super Admin")
SUPER_ADMIN_ROLE = "Super Admin"

# =============================================================================
# Cache (dashboard stats)
# =============================================================================
CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "hive-default"),
    }
}
USER_STATS_CACHE_SECONDS = int(os.getenv("USER_STATS_CACHE_SECONDS", "600"))

# =============================================================================
# Tables: search, resolution & export
# =============================================================================
TABLES = {
    # "database" (ORM-backed index) or "meilisearch" (HTTP search service)
    "SEARCH_BACKEND": os.getenv("SEARCH_BACKEND", "database"),
    "MEILISEARCH_URL": os.getenv("MEILISEARCH_URL", "http://127.0.0.1:7700"),
    "MEILISEARCH_API_KEY": os.getenv("MEILISEARCH_API_KEY", ""),
    "SEARCH_TIMEOUT": float(os.getenv("SEARCH_TIMEOUT", "5")),
    "MAX_PAGE_SIZE": int(os.getenv("TABLES_MAX_PAGE_SIZE", "100")),
    "DEFAULT_PAGE_SIZE": 10,
    "DOCUMENT_ROW_CAP": int(os.getenv("EXPORT_DOCUMENT_ROW_CAP", "5000")),
    "PAYLOAD_ROW_CAP": int(os.getenv("EXPORT_PAYLOAD_ROW_CAP", "10000")),
    "FILE_ROW_CAP": int(os.getenv("EXPORT_FILE_ROW_CAP", "100000")),
    # Per-resource override of the pin-to-top presentation rule.
    # {"users": {"id": 1, "scope": "always" | "default_view" | "never"}}
    "PIN_TO_TOP": {},
}

# =============================================================================
# Structured Logging Configuration
# =============================================================================
from ops.logging_config import get_logging_config
LOGGING = get_logging_config(DEBUG)

# Application version (set via CI/CD)
VERSION = os.getenv("APP_VERSION", "dev")
