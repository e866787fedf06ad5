"""
Django settings for the live tracker relay.

Values come from the environment or a ``.env`` file via python-decouple.
For the full list of settings and their values, see
https://docs.djangoproject.com/en/5.0/ref/settings/
"""

import logging
import time
from pathlib import Path

from decouple import config

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR: Path = Path(__file__).resolve().parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY: str = str(config('SECRET_KEY', default='django-insecure-change-me-in-production'))

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG: bool = config('DEBUG', default=False, cast=bool)

ALLOWED_HOSTS: list[str] = ['*']


# Application definition

INSTALLED_APPS: list[str] = [
    'daphne',
    'channels',
    'relay.apps.RelayConfig',
]

MIDDLEWARE: list[str] = [
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF: str = 'config.urls'

ASGI_APPLICATION: str = 'config.asgi.application'

# Only the latest location per tracker is kept, in memory
DATABASES: dict = {}

USE_TZ: bool = True

TIME_ZONE: str = 'UTC'


# Relay listener
RELAY_HOST: str = str(config('RELAY_HOST', default='0.0.0.0'))
RELAY_PORT: int = config('RELAY_PORT', default=8081, cast=int)

# Per-connection outbound queue; a full queue skips that recipient
RELAY_CHANNEL_CAPACITY: int = config('RELAY_CHANNEL_CAPACITY', default=100, cast=int)
RELAY_CHANNEL_EXPIRY: int = config('RELAY_CHANNEL_EXPIRY', default=60, cast=int)

CHANNEL_LAYERS: dict = {
    'default': {
        'BACKEND': 'channels.layers.InMemoryChannelLayer',
        'CONFIG': {
            'capacity': RELAY_CHANNEL_CAPACITY,
            'expiry': RELAY_CHANNEL_EXPIRY,
        },
    }
}


# Logging configuration

# Add custom TRACE level (below DEBUG)
TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, 'TRACE')

LOG_LEVEL: str = str(config('LOG_LEVEL', default='INFO')).upper()


# Custom formatter that uses local time instead of UTC
class LocalTimeFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        """Override formatTime to use local time instead of UTC."""
        ct = self.converter(record.created)
        if datefmt:
            s = time.strftime(datefmt, ct)
        else:
            s = time.strftime("%Y-%m-%d %H:%M:%S", ct)
            s = "%s,%03d" % (s, record.msecs)
        return s

    converter = time.localtime


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            '()': 'config.settings.LocalTimeFormatter',
            'format': '%(asctime)s.%(msecs)03d %(levelname)-7s %(module)s %(message)s',
            'datefmt': '%Y%m%d-%H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'relay': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'config': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}
