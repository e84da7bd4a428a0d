import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from photoset.models.generation_job import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    GenerationJob,
)
from photoset.models.payment import Payment

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    JOB_STATUS_PENDING: frozenset({JOB_STATUS_PROCESSING, JOB_STATUS_FAILED}),
    JOB_STATUS_PROCESSING: frozenset({JOB_STATUS_COMPLETED, JOB_STATUS_FAILED}),
    JOB_STATUS_COMPLETED: frozenset(),
    JOB_STATUS_FAILED: frozenset(),
}


class InvalidJobTransition(Exception):
    def __init__(self, job_id: int, current: str, target: str):
        super().__init__(f"job {job_id}: {current} -> {target} not allowed")
        self.job_id = job_id
        self.current = current
        self.target = target


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class JobService:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        avatar_id: int,
        style_id: str,
        total_photos: int,
        payment_id: int | None = None,
    ) -> GenerationJob:
        job = GenerationJob(
            avatar_id=avatar_id,
            style_id=style_id,
            status=JOB_STATUS_PENDING,
            total_photos=total_photos,
            completed_photos=0,
            payment_id=payment_id,
        )
        self.db.add(job)
        if payment_id is not None:
            self.db.flush()
            self.db.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(generation_job_id=job.id)
                .execution_options(synchronize_session=False)
            )
        self.db.commit()
        self.db.refresh(job)
        return job

    def get(self, job_id: int) -> GenerationJob | None:
        return self.db.query(GenerationJob).filter(GenerationJob.id == job_id).one_or_none()

    def latest_for_avatar(self, avatar_id: int) -> GenerationJob | None:
        return (
            self.db.query(GenerationJob)
            .filter(GenerationJob.avatar_id == avatar_id)
            .order_by(GenerationJob.created_at.desc(), GenerationJob.id.desc())
            .first()
        )

    def transition(self, job: GenerationJob, target: str, error_message: str | None = None) -> GenerationJob:
        """Move job to target status. Raises InvalidJobTransition out of terminal states."""
        if not can_transition(job.status, target):
            raise InvalidJobTransition(job.id, job.status, target)
        job.status = target
        if error_message is not None:
            job.error_message = error_message
        self.db.add(job)
        self.db.commit()
        logger.info(
            "generation_job_status_changed",
            extra={"job_id": job.id, "reason": target},
        )
        return job

    def mark_failed(self, job: GenerationJob, error_message: str) -> GenerationJob:
        return self.transition(job, JOB_STATUS_FAILED, error_message)

    def set_queue_message_id(self, job: GenerationJob, message_id: str) -> None:
        job.queue_message_id = message_id
        self.db.add(job)
        self.db.commit()

    def increment_completed(self, job_id: int) -> None:
        """Atomic counter bump; safe with concurrent chunk workers."""
        self.db.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)
            .values(completed_photos=GenerationJob.completed_photos + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def increment_failed(self, job_id: int, error: str | None = None) -> None:
        values = {"failed_photos": GenerationJob.failed_photos + 1}
        if error:
            values["error_message"] = error[:1000]
        self.db.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def transition_if(
        self,
        job_id: int,
        expected: str,
        target: str,
        error_message: str | None = None,
    ) -> bool:
        """
        Compare-and-set status. Returns False when another worker moved the job first.
        Raises InvalidJobTransition for a transition the state machine forbids.
        """
        if not can_transition(expected, target):
            raise InvalidJobTransition(job_id, expected, target)
        values = {"status": target}
        if error_message is not None:
            values["error_message"] = error_message
        result = self.db.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id, GenerationJob.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        changed = result.rowcount == 1
        if changed:
            logger.info("generation_job_status_changed", extra={"job_id": job_id, "reason": target})
        return changed
