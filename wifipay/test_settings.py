"""
Settings used by the test suite: in-memory SQLite, console logging only
"""

from .settings import *  # noqa: F401,F403
from .settings import LOGGING

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

LOGGING["loggers"]["django"]["handlers"] = ["console"]
LOGGING["loggers"]["vouchers"]["handlers"] = ["console"]
LOGGING["loggers"]["vouchers"]["level"] = "WARNING"

PAYMENT_WEBHOOK_SECRET = ""
MIKROTIK_MOCK_MODE = False
