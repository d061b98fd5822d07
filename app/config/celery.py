"""
Celery application.

Workers run what the settlement engine defers past a commit: provider
refund reversals, payout transfers and order status notifications. The
periodic payout sweep is registered through django-celery-beat.

    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("settlement_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
