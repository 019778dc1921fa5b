"""Base settings for all environments.

Common configuration for the booking scheduling service: Django, Django
Rest Framework, Celery (beat ticks and the job queue), metrics and the
lifecycle tunables.
Environment-specific overrides live in `dev.py`, `prod.py` and `test.py`.
Every value can be supplied through the environment or a `.env` file.
"""

import os
from pathlib import Path

import structlog
from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / '.env')


def get_env(var_name: str, default=None, required: bool = False):
    value = os.environ.get(var_name, default)
    if required and value in (None, ''):
        raise ImproperlyConfigured(f'Missing required environment variable: {var_name}')
    return value


def get_int(var_name: str, default: int) -> int:
    value = get_env(var_name, str(default))
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ImproperlyConfigured(f'{var_name} must be an integer, got {value!r}')


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = get_env('DJANGO_SECRET_KEY', 'replace-me-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = False

ALLOWED_HOSTS: list[str] = get_env('DJANGO_ALLOWED_HOSTS', '*').split(',')

# Application definition

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    # Third-party apps
    'rest_framework',
    'django_prometheus',
    # Domain apps
    'apps.core',
    'apps.bookings',
    'apps.notifications',
    'apps.reviews',
]

MIDDLEWARE = [
    'django_prometheus.middleware.PrometheusBeforeMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django_prometheus.middleware.PrometheusAfterMiddleware',
]

ROOT_URLCONF = 'config.urls'

WSGI_APPLICATION = 'config.wsgi.application'

# Database
# https://docs.djangoproject.com/en/5.0/ref/settings/#databases

DATABASES = {
    'default': {
        'ENGINE': get_env('DB_ENGINE', 'django_prometheus.db.backends.sqlite3'),
        'NAME': get_env('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': get_env('DB_USER', ''),
        'PASSWORD': get_env('DB_PASSWORD', ''),
        'HOST': get_env('DB_HOST', ''),
        'PORT': get_env('DB_PORT', ''),
    }
}

LANGUAGE_CODE = 'en-us'

TIME_ZONE = get_env('TIME_ZONE', 'UTC')

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Email defaults
DEFAULT_FROM_EMAIL = get_env('DEFAULT_FROM_EMAIL', 'no-reply@rentals.local')

# Cache: recipient lookups, presence and trigger locks
CACHE_URL = get_env('CACHE_URL', '')

if CACHE_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': CACHE_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            },
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'scheduling-cache',
        }
    }

RECIPIENT_CACHE_TIMEOUT = get_int('RECIPIENT_CACHE_TIMEOUT', 900)
PRESENCE_TTL_SECONDS = get_int('PRESENCE_TTL_SECONDS', 300)

# Django Rest Framework
REST_FRAMEWORK = {
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
}

# Sliding-window limits, keyed by a view's ``throttle_scope``
RATE_LIMIT_REDIS_URL = get_env('RATE_LIMIT_REDIS_URL', '')
RATE_LIMITS = {
    'health': {'max_requests': 60, 'window_ms': 60_000},
    'api': {'max_requests': 100, 'window_ms': 15 * 60_000},
    'auth': {'max_requests': 5, 'window_ms': 15 * 60_000, 'block_duration_ms': 60 * 60_000},
}

# Celery carries both the beat trigger ticks and the job queue
CELERY_BROKER_URL = get_env('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = get_env('CELERY_RESULT_BACKEND', 'redis://localhost:6379/1')
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TASK_ROUTES = {
    'scheduling.fire_trigger': {'queue': 'scheduling'},
}
# Acknowledge after the handler returns so a lost worker's job is redelivered
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# Job queue
JOB_QUEUE_DEFAULT_MAX_ATTEMPTS = get_int('JOB_QUEUE_DEFAULT_MAX_ATTEMPTS', 3)
JOB_QUEUE_BACKOFF_BASE_MS = get_int('JOB_QUEUE_BACKOFF_BASE_MS', 1000)
JOB_QUEUE_BACKOFF_MAX_MS = get_int('JOB_QUEUE_BACKOFF_MAX_MS', 15 * 60 * 1000)
# Must exceed the longest countdown (payment window, backoff cap) or Redis
# redelivers delayed jobs early.
JOB_QUEUE_VISIBILITY_TIMEOUT = get_int('JOB_QUEUE_VISIBILITY_TIMEOUT', 3600)
CELERY_BROKER_TRANSPORT_OPTIONS = {'visibility_timeout': JOB_QUEUE_VISIBILITY_TIMEOUT}
JOB_QUEUE_CONCURRENCY = {
    'bookings': get_int('JOB_QUEUE_BOOKINGS_CONCURRENCY', 5),
    'notifications': get_int('JOB_QUEUE_NOTIFICATIONS_CONCURRENCY', 10),
    'search-indexing': get_int('JOB_QUEUE_SEARCH_INDEXING_CONCURRENCY', 2),
}

# Booking lifecycle
BOOKING_PAYMENT_WINDOW_MINUTES = get_int('BOOKING_PAYMENT_WINDOW_MINUTES', 30)
BOOKING_REMINDER_LEAD_HOURS = get_int('BOOKING_REMINDER_LEAD_HOURS', 24)
BOOKING_AUTO_COMPLETE_AFTER_HOURS = get_int('BOOKING_AUTO_COMPLETE_AFTER_HOURS', 48)
BOOKING_PAYMENT_RELEASE_DELAY_MS = get_int('BOOKING_PAYMENT_RELEASE_DELAY_MS', 1000)

# Notifications
NOTIFICATION_FLUSH_BATCH_SIZE = get_int('NOTIFICATION_FLUSH_BATCH_SIZE', 100)
PUSH_GATEWAY_URL = get_env('PUSH_GATEWAY_URL', '')
PUSH_GATEWAY_TOKEN = get_env('PUSH_GATEWAY_TOKEN', '')
TWILIO_ACCOUNT_SID = get_env('TWILIO_ACCOUNT_SID', '')
TWILIO_AUTH_TOKEN = get_env('TWILIO_AUTH_TOKEN', '')
TWILIO_FROM_NUMBER = get_env('TWILIO_FROM_NUMBER', '')

# Data retention windows, in days
RETENTION_NOTIFICATIONS_DAYS = get_int('RETENTION_NOTIFICATIONS_DAYS', 90)
RETENTION_SESSIONS_DAYS = get_int('RETENTION_SESSIONS_DAYS', 30)
RETENTION_AUDIT_LOG_DAYS = get_int('RETENTION_AUDIT_LOG_DAYS', 365)

# Logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

LOG_LEVEL = get_env('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'structlog.stdlib.ProcessorFormatter',
            'processor': structlog.processors.JSONRenderer(),
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
            'level': LOG_LEVEL,
        }
    },
    'root': {'handlers': ['console'], 'level': 'WARNING'},
    'loggers': {
        'django': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
        'apps': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'shared': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
