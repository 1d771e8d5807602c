"""
Database configuration for AAPRP.

Supports:
- DATABASE_URL (postgres:// or postgresql://)
- Individual DB_* environment variables
- SQLite fallback for development and tests

On AWS Lambda connections go through RDS Proxy, so Django keeps none open
between invocations.
"""
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

POSTGRES_ENGINE = 'django.db.backends.postgresql'
POSTGRES_SCHEMES = ('postgres', 'postgresql')


def _on_lambda() -> bool:
    return bool(os.getenv('AWS_LAMBDA_FUNCTION_NAME'))


def get_database_config(base_dir: Path) -> dict:
    database_url = os.getenv('DATABASE_URL', '')
    if database_url:
        config = parse_database_url(database_url)
    elif os.getenv('DB_HOST'):
        config = _env_config()
    else:
        return {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': base_dir / 'db.sqlite3',
        }

    options = config.setdefault('OPTIONS', {})
    if os.getenv('DB_SSLMODE'):
        options['sslmode'] = os.getenv('DB_SSLMODE')

    if _on_lambda():
        config['CONN_MAX_AGE'] = 0
        options['connect_timeout'] = 5
        options['options'] = '-c statement_timeout=30000'
    else:
        config['CONN_MAX_AGE'] = int(os.getenv('DB_CONN_MAX_AGE', '60'))

    return config


def parse_database_url(url: str) -> dict:
    """Parse a PostgreSQL URL into a Django DATABASES entry."""
    parsed = urlparse(url)
    if parsed.scheme not in POSTGRES_SCHEMES or not parsed.path.strip('/'):
        raise ValueError(f"Unsupported DATABASE_URL: {parsed.scheme}://{parsed.hostname or ''}")

    return {
        'ENGINE': POSTGRES_ENGINE,
        'NAME': parsed.path.lstrip('/'),
        'USER': unquote(parsed.username or ''),
        'PASSWORD': unquote(parsed.password or ''),
        'HOST': parsed.hostname or 'localhost',
        'PORT': str(parsed.port or 5432),
    }


def _env_config() -> dict:
    return {
        'ENGINE': POSTGRES_ENGINE,
        'NAME': os.getenv('DB_NAME', 'aaprp'),
        'USER': os.getenv('DB_USER', 'postgres'),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', 'localhost'),
        'PORT': os.getenv('DB_PORT', '5432'),
    }
