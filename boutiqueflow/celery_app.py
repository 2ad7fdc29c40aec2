"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from boutiqueflow.config import settings

# Create Celery app
celery_app = Celery(
    "boutiqueflow",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "boutiqueflow.tasks.heartland_sync",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Beat and POST /sync both publish here
    task_default_queue="default",
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Beat schedule for periodic tasks
    beat_schedule={
        "sync-heartland-nightly": {
            "task": "boutiqueflow.tasks.heartland_sync.sync_heartland_data",
            # Run nightly at 7 AM UTC (2-3 AM in the store's time zone)
            "schedule": crontab(hour=7, minute=0),
            "options": {"queue": "default"},
        },
        "refresh-receipts-cache": {
            "task": "boutiqueflow.tasks.heartland_sync.refresh_receipts_cache",
            # Keep the receiving queue fresh during the day
            "schedule": crontab(minute="*/15"),
            "options": {"queue": "default"},
        },
    },
)
