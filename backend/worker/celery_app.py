"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- JSON serialization in UTC
- Beat schedule for the schedule-trigger poller
"""

from celery import Celery, signals

from app.config import get_settings
from core.logging_config import setup_logging

settings = get_settings()

celery_app = Celery(
    "flowline",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "workflows.*": {"queue": "triggers"},
    },
    task_default_queue="default",

    # Result expiration (1 hour); poll results are only useful for debugging
    result_expires=3600,

    # A tick waits at most SCHEDULE_DRAIN_SECONDS for its runs, then finalizes the rest
    task_soft_time_limit=settings.SCHEDULE_DRAIN_SECONDS + 60,
    task_time_limit=settings.SCHEDULE_DRAIN_SECONDS + 120,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,

    beat_schedule={
        "poll-schedules": {
            "task": "workflows.poll_schedules",
            "schedule": float(settings.SCHEDULE_POLL_SECONDS),
            "options": {"queue": "triggers"},
        },
    },

    include=[
        "worker.tasks.schedule_poller",
    ],
)


@signals.setup_logging.connect
def configure_worker_logging(**kwargs):
    """Replace Celery's logging setup with the structlog configuration."""
    setup_logging(component="worker")
