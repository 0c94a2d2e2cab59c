"""
Celery configuration for the billing service.

Workers run the subscription sweeps and expiry notifications in
billing.tasks. Their schedule lives in the django-celery-beat tables
(seeded by a billing migration) and is read by the DatabaseScheduler.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up billing/tasks.py
app.autodiscover_tasks()
