"""Test settings: in-memory database, cache, mail and Celery transport."""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'scheduling-tests',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = None
RATE_LIMIT_REDIS_URL = ''
PUSH_GATEWAY_URL = ''
TWILIO_ACCOUNT_SID = ''

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
