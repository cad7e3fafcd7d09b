"""
Celery configuration for the Django application.

Celery runs the payment engine's background work:
- Delayed delivery of provider webhooks (scheduled by the mock provider)
- Periodic jobs registered with django-celery-beat (webhook replay,
  payment reconciliation, expired intent cleanup)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from payments.tasks import reconcile_single_intent

    reconcile_single_intent.delay(str(intent.id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
