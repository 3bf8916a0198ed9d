"""
Celery configuration for the chat service.

Celery runs the reconciliation jobs that repair derived chat fields
(last-message summary, unread counters) after partial failures. Beat
schedules chat.tasks.reconcile_recent_conversations; see
CELERY_BEAT_SCHEDULE in settings.

Redis is both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("chat_service")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
