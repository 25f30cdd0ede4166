"""Celery application configuration.

- One durable queue for export units, one for maintenance
- Late acks + prefetch 1 so a crashed worker's unit is redelivered
- Import-safe defaults (memory broker) for unit tests
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from bulk_export.core.config import settings


PROCESS_UNIT_TASK = "bulk_export.tasks.export_jobs.process_export_unit_task"
EXPIRE_JOBS_TASK = "bulk_export.tasks.maintenance.expire_completed_jobs_task"


def _default_broker() -> str:
    # Keep imports safe in dev/tests even without Redis.
    return settings.CELERY_BROKER_URL or "memory://"


def _default_backend() -> str:
    return settings.CELERY_RESULT_BACKEND or "cache+memory://"


celery_app = Celery(
    "bulk_export",
    broker=_default_broker(),
    backend=_default_backend(),
    include=[
        "bulk_export.tasks.export_jobs",
        "bulk_export.tasks.maintenance",
    ],
)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_POOL_SIZE,
    task_ignore_result=True,
    task_default_queue=settings.EXPORT_QUEUE_NAME,
    task_queues=(
        Queue(settings.EXPORT_QUEUE_NAME, durable=True),
        Queue("q.maintenance"),
    ),
    task_routes={
        PROCESS_UNIT_TASK: {"queue": settings.EXPORT_QUEUE_NAME},
        EXPIRE_JOBS_TASK: {"queue": "q.maintenance"},
    },
    beat_schedule={
        "expire-completed-jobs": {
            "task": EXPIRE_JOBS_TASK,
            "schedule": crontab(minute=15),
            "args": (),
        },
    },
)
