"""
ASGI config for AAPRP project.

Served by a traditional ASGI server (Daphne, Uvicorn) or wrapped by
Mangum in lambda_handlers.api_handler for API Gateway.
"""
import os

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

from django.core.asgi import get_asgi_application

# Initialized at import so Lambda pays the cost at container start
application = get_asgi_application()
