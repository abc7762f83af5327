"""
Django settings for WifiPay voucher platform
"""

from pathlib import Path
from decouple import config, Csv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config(
    "SECRET_KEY", default="django-insecure-wifipay-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config("DEBUG", default=False, cast=bool)

ALLOWED_HOSTS = config(
    "ALLOWED_HOSTS",
    default="localhost,127.0.0.1,testserver",
    cast=Csv(),
)

# Application definition
INSTALLED_APPS = [
    "jazzmin",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "corsheaders",
    "django_crontab",  # For scheduled tasks
    "vouchers",
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
    # Resolves request.tenant from the X-API-Key header
    "vouchers.middleware.TenantMiddleware",
]

ROOT_URLCONF = "wifipay.urls"

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
    },
]

WSGI_APPLICATION = "wifipay.wsgi.application"

# Database
# MySQL in production, SQLite when DB_ENGINE=sqlite (local runs and tests)
DB_ENGINE = config("DB_ENGINE", default="mysql")

if DB_ENGINE == "sqlite":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": config("DB_NAME", default=str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.mysql",
            "NAME": config("DB_NAME", default="wifipay"),
            "USER": config("DB_USER", default="root"),
            "PASSWORD": config("DB_PASSWORD", default=""),
            "HOST": config("DB_HOST", default="localhost"),
            "PORT": config("DB_PORT", default="3306"),
            "OPTIONS": {
                "charset": "utf8mb4",
                "init_command": "SET sql_mode='STRICT_TRANS_TABLES'",
            },
        }
    }


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Nairobi"
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# WhiteNoise serves the admin assets in production
WHITENOISE_USE_FINDERS = DEBUG
WHITENOISE_AUTOREFRESH = DEBUG
WHITENOISE_MAX_AGE = 31536000 if not DEBUG else 0  # 1 year cache in production

if not DEBUG:
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    X_FRAME_OPTIONS = "DENY"
    SECURE_REFERRER_POLICY = "same-origin"

# Logging
LOG_DIR = Path(config("LOG_DIR", default=str(BASE_DIR / "logs")))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "wifipay.log",
            "formatter": "verbose",
            "delay": True,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO" if DEBUG else "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"] if not DEBUG else ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "vouchers": {
            "handlers": ["console", "file"] if not DEBUG else ["console"],
            "level": config("VOUCHERS_LOG_LEVEL", default="INFO"),
            "propagate": False,
        },
    },
}

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# REST Framework Configuration
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "EXCEPTION_HANDLER": "vouchers.exception_handler.custom_exception_handler",
    "UNAUTHENTICATED_USER": None,
}

# CORS - captive portal pages are served from the router, so any origin may
# call the captive endpoints
CORS_ALLOW_ALL_ORIGINS = config("CORS_ALLOW_ALL_ORIGINS", default=True, cast=bool)
CORS_ALLOWED_ORIGINS = config("CORS_ALLOWED_ORIGINS", default="", cast=Csv())
CORS_PREFLIGHT_MAX_AGE = 86400  # 24 hours

CORS_ALLOW_HEADERS = [
    "accept",
    "accept-encoding",
    "authorization",
    "content-type",
    "origin",
    "user-agent",
    "x-api-key",
    "x-requested-with",
    "x-webhook-signature",
]

CORS_ALLOW_METHODS = [
    "GET",
    "OPTIONS",
    "POST",
]

# Payment provider webhooks
# When set, inbound payment events must carry a valid X-Webhook-Signature
PAYMENT_WEBHOOK_SECRET = config("PAYMENT_WEBHOOK_SECRET", default="")
PAYMENT_AMOUNT_TOLERANCE = config("PAYMENT_AMOUNT_TOLERANCE", default="0.01")

# Voucher lifecycle
VOUCHER_DEFAULT_EXPIRY_DAYS = config("VOUCHER_DEFAULT_EXPIRY_DAYS", default=30, cast=int)
VOUCHER_DEFAULT_COMMISSION_RATE = config(
    "VOUCHER_DEFAULT_COMMISSION_RATE", default="20.00"
)
VOUCHER_EXPIRY_BATCH_SIZE = config("VOUCHER_EXPIRY_BATCH_SIZE", default=500, cast=int)

# Verification abuse protection: attempts per MAC per window (seconds)
VOUCHER_VERIFY_RATE_LIMIT = config("VOUCHER_VERIFY_RATE_LIMIT", default=5, cast=int)
VOUCHER_VERIFY_RATE_WINDOW = config(
    "VOUCHER_VERIFY_RATE_WINDOW", default=3600, cast=int
)

# Device synchronization
VOUCHER_SYNC_MAX_WORKERS = config("VOUCHER_SYNC_MAX_WORKERS", default=4, cast=int)
VOUCHER_SYNC_TIMEOUT = config("VOUCHER_SYNC_TIMEOUT", default=10, cast=int)
MIKROTIK_CONNECT_TIMEOUT = config("MIKROTIK_CONNECT_TIMEOUT", default=5, cast=int)
MIKROTIK_SSL_VERIFY = config("MIKROTIK_SSL_VERIFY", default=False, cast=bool)
MIKROTIK_MOCK_MODE = config("MIKROTIK_MOCK_MODE", default=False, cast=bool)

# Jazzmin Configuration
JAZZMIN_SETTINGS = {
    "site_title": "WifiPay Admin",
    "site_header": "WifiPay",
    "site_brand": "WifiPay",
    "welcome_sign": "WifiPay voucher platform",
    "copyright": "WifiPay",
    "search_model": [
        "vouchers.Voucher",
        "vouchers.Payment",
        "vouchers.Router",
    ],
    "show_sidebar": True,
    "navigation_expanded": True,
    "order_with_respect_to": ["vouchers", "auth"],
    "icons": {
        "auth": "fas fa-users-cog",
        "auth.user": "fas fa-user",
        "vouchers.Tenant": "fas fa-building",
        "vouchers.Router": "fas fa-network-wired",
        "vouchers.Package": "fas fa-boxes",
        "vouchers.Voucher": "fas fa-ticket-alt",
        "vouchers.Payment": "fas fa-credit-card",
        "vouchers.PaymentWebhook": "fas fa-plug",
        "vouchers.VerificationAttempt": "fas fa-history",
    },
    "changeform_format": "horizontal_tabs",
}


# CRONTAB CONFIGURATION FOR SCHEDULED TASKS
# ============================================
# Run 'python manage.py crontab add' to install cron jobs
# Run 'python manage.py crontab show' to list active cron jobs
# Run 'python manage.py crontab remove' to uninstall cron jobs

CRONJOBS = [
    # Expire vouchers whose governing deadline has passed
    (
        "*/5 * * * *",
        "vouchers.tasks.expire_vouchers",
        ">> /var/log/wifipay_cron.log 2>&1",
    ),
    # Link completed payments that arrived before their voucher was known
    (
        "*/5 * * * *",
        "vouchers.tasks.reconcile_unlinked_payments",
        ">> /var/log/wifipay_cron.log 2>&1",
    ),
    # Push sellable vouchers to every active router
    (
        "*/15 * * * *",
        "vouchers.tasks.sync_all_routers",
        ">> /var/log/wifipay_cron.log 2>&1",
    ),
]
