# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings, URLs, ASGI/WSGI entry points and the Celery app.
#
# The Celery app is imported here so the subscription sweep tasks in
# billing.tasks are registered whenever Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
