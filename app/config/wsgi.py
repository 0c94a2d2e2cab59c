"""
WSGI config for the billing service.

Gunicorn or any other WSGI server can serve the API from this entry point;
asgi.py exposes the same application for Uvicorn.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
