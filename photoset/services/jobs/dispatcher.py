"""
Job dispatcher: creates the generation job row and hands it to the queue.
Any dispatch failure marks the job failed and refunds the funding payment exactly once.
"""
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from photoset.core.errors import DispatchError, ErrorCode
from photoset.models.avatar import AVATAR_STATUS_PROCESSING, Avatar
from photoset.models.generation_job import GenerationJob
from photoset.services.compensations.service import (
    REASON_QUEUE_FAILED,
    REASON_QUEUE_UNAVAILABLE,
    CompensationService,
)
from photoset.services.jobs.config import GenerationConfig, get_generation_config
from photoset.services.jobs.service import JobService
from photoset.services.queue.publisher import QueuePublisher
from photoset.utils.metrics import (
    compensation_inconsistencies_total,
    generation_jobs_created_total,
    generation_jobs_dispatch_failed_total,
)

logger = logging.getLogger(__name__)

PROCESSING_MODE_QUEUED = "queued"


@dataclass
class DispatchResult:
    job: GenerationJob
    total_photos: int
    message_id: str
    processing_mode: str = PROCESSING_MODE_QUEUED


class JobDispatcher:
    def __init__(
        self,
        db: Session,
        publisher: QueuePublisher | None = None,
        compensations: CompensationService | None = None,
        config: GenerationConfig | None = None,
    ):
        self.db = db
        self.publisher = publisher or QueuePublisher()
        self.compensations = compensations or CompensationService(db)
        self.config = config or get_generation_config()
        self.jobs = JobService(db)

    def dispatch(
        self,
        user_id: int,
        avatar_id: int,
        style_id: str,
        prompts: list[str],
        reference_images: list[str],
        payment_id: int | None = None,
    ) -> DispatchResult:
        job = self.jobs.create(avatar_id, style_id, total_photos=len(prompts), payment_id=payment_id)
        generation_jobs_created_total.labels(style_id=style_id).inc()
        logger.info(
            "generation_job_created",
            extra={
                "job_id": job.id,
                "user_id": user_id,
                "avatar_id": avatar_id,
                "style_id": style_id,
                "total_photos": len(prompts),
                "payment_id": payment_id,
            },
        )

        if not self.publisher.is_configured():
            self._fail(
                job,
                user_id,
                ErrorCode.SERVICE_UNAVAILABLE,
                REASON_QUEUE_UNAVAILABLE,
                "Сервис генерации временно недоступен",
            )

        payload = self.build_payload(job, user_id, prompts, reference_images)
        message_id = self.publisher.publish_generation(payload)
        if not message_id:
            self._fail(
                job,
                user_id,
                ErrorCode.QUEUE_FAILED,
                REASON_QUEUE_FAILED,
                "Не удалось запустить генерацию",
            )

        self.jobs.set_queue_message_id(job, message_id)
        avatar = self.db.query(Avatar).filter(Avatar.id == avatar_id).one_or_none()
        if avatar and avatar.status != AVATAR_STATUS_PROCESSING:
            avatar.status = AVATAR_STATUS_PROCESSING
            self.db.add(avatar)
            self.db.commit()

        logger.info(
            "generation_job_dispatched",
            extra={"job_id": job.id, "user_id": user_id, "message_id": message_id},
        )
        return DispatchResult(job=job, total_photos=job.total_photos, message_id=message_id)

    def build_payload(
        self,
        job: GenerationJob,
        user_id: int,
        prompts: list[str],
        reference_images: list[str],
    ) -> dict[str, Any]:
        return {
            "job_id": job.id,
            "user_id": user_id,
            "avatar_id": job.avatar_id,
            "style_id": job.style_id,
            "prompts": list(prompts),
            "reference_images": list(reference_images),
            "start_index": 0,
            "chunk_size": self.config.chunk_size,
            "max_concurrent": self.config.max_concurrent,
            "chunk_delay_ms": self.config.chunk_delay_ms,
            "task_creation_delay_ms": self.config.task_creation_delay_ms,
        }

    def _fail(
        self,
        job: GenerationJob,
        user_id: int,
        code: ErrorCode,
        reason: str,
        message: str,
    ) -> None:
        generation_jobs_dispatch_failed_total.labels(error_code=code.value).inc()
        job_id = job.id
        try:
            self.jobs.mark_failed(job, message)
        except SQLAlchemyError as e:
            # job row stays pending while the payment is being refunded
            self.db.rollback()
            compensation_inconsistencies_total.inc()
            logger.error(
                "generation_job_mark_failed_error",
                extra={"job_id": job_id, "user_id": user_id, "error": str(e)},
            )
        compensation = self.compensations.compensate(user_id, job_id, reason)
        logger.error(
            "generation_job_dispatch_failed",
            extra={
                "job_id": job_id,
                "user_id": user_id,
                "error": code.value,
                "refunded": compensation.refunded,
            },
        )
        raise DispatchError(
            message,
            code=code,
            details={"refunded": compensation.refunded, "jobId": job_id},
        )
