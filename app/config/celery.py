"""
Celery configuration for the Django application.

Celery runs the background side of the payments platform:
- Customer refund receipt e-mails (best effort, retried)
- Periodic report of pending payments stuck in PROCESSING
- Retry and cleanup of provider webhook events

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps. Periodic tasks
below are synced into django_celery_beat's database scheduler on start.

Usage:
    # Call a task asynchronously:
    from notifications.tasks import send_refund_receipt_email
    send_refund_receipt_email.delay(str(order.id), "50.00", refund_id)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()

app.conf.beat_schedule = {
    "report-stuck-pending-payments": {
        "task": "payments.tasks.report_stuck_pending_payments",
        "schedule": crontab(minute="*/5"),
    },
    "retry-failed-webhooks": {
        "task": "payments.tasks.retry_failed_webhooks",
        "schedule": crontab(minute="*/10"),
    },
    "cleanup-old-webhooks": {
        "task": "payments.tasks.cleanup_old_webhooks",
        "schedule": crontab(hour=3, minute=30),
    },
}
