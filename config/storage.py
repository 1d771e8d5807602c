"""
Storage configuration for AAPRP.

Review report PDFs go to a private S3 bucket in production (served through
signed URLs) and to MEDIA_ROOT in development.
"""
import os
from pathlib import Path

USE_S3 = os.getenv('USE_S3_STORAGE', 'false').lower() == 'true'

STATICFILES_BACKEND = 'django.contrib.staticfiles.storage.StaticFilesStorage'


def _s3_options() -> dict:
    return {
        'access_key': os.getenv('AWS_ACCESS_KEY_ID'),
        'secret_key': os.getenv('AWS_SECRET_ACCESS_KEY'),
        'bucket_name': os.getenv('AWS_STORAGE_BUCKET_NAME', 'aaprp-reports'),
        'region_name': os.getenv('AWS_S3_REGION_NAME', 'eu-west-1'),
        'custom_domain': os.getenv('AWS_S3_CUSTOM_DOMAIN') or None,
        'location': os.getenv('AWS_S3_LOCATION', ''),
        'file_overwrite': False,
        'default_acl': 'private',
        # Reports are confidential until published
        'querystring_auth': True,
        'querystring_expire': int(os.getenv('AWS_S3_URL_EXPIRY', '3600')),
        'object_parameters': {'CacheControl': 'max-age=86400'},
    }


def get_storage_settings(base_dir: Path) -> dict:
    """
    Returns the STORAGES, MEDIA_URL and MEDIA_ROOT settings.

    Args:
        base_dir: The BASE_DIR from Django settings
    """
    if USE_S3:
        default = {
            'BACKEND': 'storages.backends.s3.S3Storage',
            'OPTIONS': _s3_options(),
        }
    else:
        default = {'BACKEND': 'django.core.files.storage.FileSystemStorage'}

    return {
        'STORAGES': {
            'default': default,
            'staticfiles': {'BACKEND': STATICFILES_BACKEND},
        },
        'MEDIA_URL': '/media/',
        'MEDIA_ROOT': base_dir / 'media',
    }
