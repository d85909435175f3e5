# backend/listing_sync/workers/celery_app.py
from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from ..config import settings

BROKER = settings.celery_broker_url or os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
BACKEND = settings.celery_result_backend or os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

celery_app = Celery(
    "listing_sync",
    broker=BROKER,
    backend=BACKEND,
    include=["listing_sync.workers.sync_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

# Syncs are long and network-bound; keep them off the default queue.
celery_app.conf.task_routes = {
    "listing_sync.workers.sync_tasks.*": {"queue": "sync"},
}

# Daily full refresh, then retire whatever the refresh did not see.
_hour = int(settings.sync_schedule_hour) % 24
celery_app.conf.beat_schedule = {
    "daily-listing-sync": {
        "task": "listing_sync.workers.sync_tasks.sync_listings",
        "schedule": crontab(hour=_hour, minute=0),
        "kwargs": {"sweep_after": True},
    },
}
