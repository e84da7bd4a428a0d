"""
Celery publisher for generation jobs.
One send_task per job; chunked fan-out happens inside the worker.
"""
import logging
from typing import Any

from celery import Celery

from photoset.core.celery_app import celery_app
from photoset.core.config import settings
from photoset.services.circuit_breaker import get_circuit_breaker
from photoset.utils.metrics import queue_publish_total

logger = logging.getLogger(__name__)

GENERATION_TASK_NAME = "photoset.workers.tasks.generation.run_generation_job"
GENERATION_QUEUE = "generation"
BREAKER_NAME = "queue_publish"


class QueuePublisher:
    def __init__(self, app: Celery | None = None) -> None:
        self.app = app or celery_app

    def is_configured(self) -> bool:
        return settings.has_queue

    def publish_generation(self, payload: dict[str, Any]) -> str | None:
        """Returns the task id, or None when the message was not accepted by the broker."""
        try:
            result = get_circuit_breaker(BREAKER_NAME).call(
                self.app.send_task,
                GENERATION_TASK_NAME,
                kwargs={"payload": payload},
                queue=GENERATION_QUEUE,
            )
        except Exception as e:
            queue_publish_total.labels(status="failed").inc()
            logger.exception(
                "generation_publish_failed",
                extra={"job_id": payload.get("job_id"), "error": str(e)},
            )
            return None

        message_id = getattr(result, "id", None)
        queue_publish_total.labels(status="published" if message_id else "failed").inc()
        return message_id
