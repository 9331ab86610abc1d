"""Celery application running the daily CostOps cycle."""

from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "costops",
    broker=str(settings.REDIS_URL),
    backend=str(settings.REDIS_URL),
    include=["app.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # One organization cycle walks every subscription, so allow long runs
    task_time_limit=settings.DAILY_CYCLE_TIME_LIMIT,
    task_soft_time_limit=settings.DAILY_CYCLE_TIME_LIMIT - 300,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=60 * 60 * 24 * 7,
    beat_schedule={
        "run-daily-cycles": {
            "task": "app.workers.tasks.run_daily_cycles",
            "schedule": crontab(hour=settings.DAILY_CYCLE_HOUR, minute=0),
        },
    },
)
