import os

from config.settings import *  # noqa: F401,F403
from config.settings import _database_from_url

# TEST_DATABASE_URL=postgres://... runs the suite, including the row-lock tests, on PostgreSQL.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "").strip()
if TEST_DATABASE_URL:
    DATABASES = {"default": _database_from_url(TEST_DATABASE_URL)}
else:
    DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    "DEFAULT_THROTTLE_RATES": {
        "anon": "10000/minute",
        "user": "10000/minute",
        "auth": "10000/minute",
        "orders": "10000/minute",
    },
}

CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache", "LOCATION": "pos-tests"}}

REPORT_CACHE_SECONDS = 0

LOGGING = {
    **LOGGING,  # noqa: F405
    "root": {"handlers": ["console"], "level": "CRITICAL"},
    "loggers": {name: {**config, "level": "CRITICAL"} for name, config in LOGGING["loggers"].items()},  # noqa: F405
}
