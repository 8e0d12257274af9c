"""
Celery configuration for the checkout service.

Celery runs the webhook pipeline outside the request cycle:
- process_webhook_event: dispatches stored Stripe events to listeners
- Periodic maintenance (retry, stuck reset, cleanup) via celery-beat

Redis is the message broker and result backend. Tasks are auto-discovered
from the tasks.py module of every installed app.

Usage:
    from billing.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
