"""
Celery application: broker and result backend from settings.
Tasks are in photoset.workers.tasks (generation fan-out, stuck-job watchdog).
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from photoset.core.config import settings
from photoset.core.logging import configure_logging

celery_app = Celery(
    "photoset",
    broker=settings.celery_broker_url or None,
    backend=settings.celery_result_backend or None,
    include=[
        "photoset.workers.tasks.generation",
        "photoset.workers.tasks.watchdog",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=3600,
    result_expires=86400,
    beat_schedule={
        "fail-stuck-generation-jobs": {
            "task": "photoset.workers.tasks.watchdog.fail_stuck_generation_jobs",
            "schedule": crontab(minute="*/5"),
        },
    },
)

celery_app.conf.task_routes = {
    "photoset.workers.tasks.generation.run_generation_job": {"queue": "generation"},
    "photoset.workers.tasks.generation.process_generation_chunk": {"queue": "generation"},
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()
