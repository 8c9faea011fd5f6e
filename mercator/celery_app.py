"""Celery worker entry point for background re-pricing.

Quotations are re-priced off the request path by ``reprice_quotation``
whenever their cargo, carrier or sailing changes; Redis carries both the
queue and the task results. Start a worker with
``celery -A mercator.celery_app worker`` and the periodic rule-table
health check with ``celery -A mercator.celery_app beat``.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.schedules import crontab

from mercator.config import settings

logger = logging.getLogger("mercator.celery")

app = Celery(
    "mercator",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["mercator.tasks"],
)

app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A re-price is acknowledged only once its pricing result is saved
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_max_retries=settings.reprice_max_retries,
    task_default_retry_delay=settings.reprice_retry_delay_seconds,
)

# Hourly check of the database and the active rule tables
app.conf.beat_schedule = {
    "rule-tables-health-check": {
        "task": "mercator.tasks.health_check",
        "schedule": crontab(minute=0),
        "options": {"queue": "default"},
    },
}

logger.info(
    "Celery configured for %s with %d periodic task(s)",
    settings.redis_url,
    len(app.conf.beat_schedule),
)
