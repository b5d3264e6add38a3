"""
With these settings, tests run faster.
"""

from .base import *  # noqa
from .base import env_bool

MODE = "TEST"
DEBUG = False
SECRET_KEY = "test-secret-key-not-for-production"
TEST_RUNNER = "django.test.runner.DiscoverRunner"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

TELEMETRY_ENABLED = env_bool("TELEMETRY_ENABLED", False)
