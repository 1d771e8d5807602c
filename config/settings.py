"""
Django settings for the AAPRP project.

Every deployment-specific value is read from the environment so the same
settings module serves local development, Celery workers and AWS Lambda.
"""
import os
from pathlib import Path

from config.database import get_database_config
from config.storage import get_storage_settings

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-aaprp-development-key')

# Access tokens travel in httpOnly cookies; see apps/identity/jwt_auth.py
JWT_SECRET = os.getenv('JWT_SECRET', SECRET_KEY)
JWT_ACCESS_TOKEN_MINUTES = int(os.getenv('JWT_ACCESS_TOKEN_MINUTES', '15'))
JWT_REFRESH_TOKEN_DAYS = int(os.getenv('JWT_REFRESH_TOKEN_DAYS', '7'))

DEBUG = _env_bool('DJANGO_DEBUG', 'true')
ALLOWED_HOSTS = [h.strip() for h in os.getenv('DJANGO_ALLOWED_HOSTS', '*').split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'apps.core',
    'apps.identity.apps.IdentityConfig',
    'apps.organizations',
    'apps.governance',
    'apps.notifications',
    'apps.assessments',
    'apps.reviews',
    'apps.reviewers.apps.ReviewersConfig',
    'apps.findings',
    'apps.reports',
    'apps.fieldwork',
    'apps.analytics',
]

if os.getenv('USE_S3_STORAGE', 'false').lower() == 'true':
    INSTALLED_APPS.append('storages')

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.locale.LocaleMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'apps.organizations.middleware.TenantMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

ASGI_APPLICATION = 'config.asgi.application'

DATABASES = {
    'default': get_database_config(BASE_DIR),
}

AUTH_USER_MODEL = 'identity.User'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Internationalization (the programme works in English and French)
# =============================================================================

LANGUAGE_CODE = 'en'
LANGUAGES = [
    ('en', 'English'),
    ('fr', 'Français'),
]
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# =============================================================================
# Static & media files
# =============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

_storage = get_storage_settings(BASE_DIR)
STORAGES = _storage['STORAGES']
MEDIA_URL = _storage['MEDIA_URL']
MEDIA_ROOT = _storage['MEDIA_ROOT']

# =============================================================================
# E-mail
# =============================================================================

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '25'))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = _env_bool('EMAIL_USE_TLS')
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'AAPRP <noreply@aaprp.aero>')

# Used to build absolute links in notification e-mails
APP_BASE_URL = os.getenv('APP_BASE_URL', 'http://localhost:3000')

# =============================================================================
# Background tasks
# =============================================================================

TASK_BACKEND = os.getenv('TASK_BACKEND', 'local')

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE

# Lambda backend
TASK_QUEUE_URL = os.getenv('TASK_QUEUE_URL', '')
REPORT_QUEUE_URL = os.getenv('REPORT_QUEUE_URL', '')
AWS_REGION = os.getenv('AWS_REGION', 'eu-west-1')

# =============================================================================
# Programme rules
# =============================================================================

CAP_WARNING_DAYS = int(os.getenv('CAP_WARNING_DAYS', '7'))
CAP_CRITICAL_DAYS = int(os.getenv('CAP_CRITICAL_DAYS', '1'))
SYNC_MAX_RETRIES = int(os.getenv('SYNC_MAX_RETRIES', '3'))

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
    },
}
