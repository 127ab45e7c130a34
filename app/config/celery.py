"""
Celery configuration for the escrow service.

Celery runs the escrow background work:
- The hourly payout sweep and the single-hold payout task
- Auto-release of holds whose release request went unanswered
- Recovery of payout claims interrupted mid-call
- Asynchronous webhook processing and notification emails

Redis is both the message broker and result backend. Periodic schedules
live in the database (django-celery-beat) and are installed by the escrow
migrations. Tasks are auto-discovered from all installed Django apps.

Usage:
    from escrow.tasks import process_scheduled_payouts

    process_scheduled_payouts.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import logging
import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

logger = logging.getLogger(__name__)

# The name should match the Django project name
app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery looks for a tasks.py module in each installed app
app.autodiscover_tasks()


@app.task(bind=True, ignore_result=True)
def debug_task(self):
    """
    Debug task for testing Celery connectivity.

    Usage:
        from config.celery import debug_task
        debug_task.delay()
    """
    logger.info("Celery debug task request: %r", self.request)
