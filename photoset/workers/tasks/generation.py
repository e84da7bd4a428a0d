"""
Celery tasks for photoset generation.

run_generation_job: one message per job from the API; fans the prompt list out into
chunk tasks (at most max_concurrent chunks start together, waves spaced by chunk_delay_ms).
process_generation_chunk: generates one chunk of photos; whichever chunk accounts for the
last photo finalizes the job (completed when enough photos succeeded, else failed + refund).
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from photoset.core.celery_app import celery_app
from photoset.core.config import settings
from photoset.db.session import SessionLocal
from photoset.models.avatar import AVATAR_STATUS_DRAFT, AVATAR_STATUS_READY, Avatar
from photoset.models.generated_photo import GeneratedPhoto
from photoset.models.generation_job import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    TERMINAL_JOB_STATUSES,
)
from photoset.services.compensations.service import REASON_GENERATION_FAILED, CompensationService
from photoset.services.image_generation import (
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ReplicateProvider,
    generate_with_retry,
)
from photoset.services.jobs.service import JobService
from photoset.services.prompts.catalog import get_prompt_catalog
from photoset.utils.metrics import (
    generated_photos_total,
    generation_jobs_completed_total,
    generation_jobs_failed_total,
)

logger = logging.getLogger(__name__)

MAX_STORED_PROMPT_LENGTH = 500


def get_image_provider() -> ImageGenerationProvider:
    return ReplicateProvider.from_settings(settings)


def chunk_countdowns(chunk_count: int, max_concurrent: int, chunk_delay_ms: int, task_creation_delay_ms: int) -> list[float]:
    """Start offsets (seconds) per chunk: waves of max_concurrent, staggered inside a wave."""
    countdowns = []
    for index in range(chunk_count):
        wave, slot = divmod(index, max(max_concurrent, 1))
        countdowns.append((wave * chunk_delay_ms + slot * task_creation_delay_ms) / 1000)
    return countdowns


@celery_app.task(
    bind=True,
    name="photoset.workers.tasks.generation.run_generation_job",
    time_limit=120,
    soft_time_limit=110,
)
def run_generation_job(self, payload: dict[str, Any]) -> dict:
    """Split the job into chunks and schedule process_generation_chunk for each."""
    job_id = payload["job_id"]
    prompts: list[str] = payload.get("prompts") or []
    chunk_size = max(int(payload.get("chunk_size") or settings.generation_chunk_size), 1)
    start_offset = int(payload.get("start_index") or 0)

    chunks = [prompts[i:i + chunk_size] for i in range(0, len(prompts), chunk_size)]
    countdowns = chunk_countdowns(
        len(chunks),
        int(payload.get("max_concurrent") or settings.generation_max_concurrent_chunks),
        int(payload.get("chunk_delay_ms") or 0),
        int(payload.get("task_creation_delay_ms") or 0),
    )

    if not chunks:
        _fail_and_compensate(job_id, payload["user_id"], "No prompts to generate")
        return {"ok": False, "error": "no_prompts"}

    try:
        for index, chunk in enumerate(chunks):
            chunk_start = start_offset + index * chunk_size
            process_generation_chunk.apply_async(
                kwargs={
                    "job_id": job_id,
                    "user_id": payload["user_id"],
                    "avatar_id": payload["avatar_id"],
                    "style_id": payload["style_id"],
                    "prompts": chunk,
                    "reference_images": payload.get("reference_images") or [],
                    "start_index": chunk_start,
                },
                countdown=countdowns[index],
            )
            logger.info(
                "generation_chunk_scheduled",
                extra={"job_id": job_id, "chunk_start": chunk_start, "chunk_end": chunk_start + len(chunk)},
            )
    except Exception:
        logger.exception("generation_fanout_failed", extra={"job_id": job_id})
        _fail_and_compensate(job_id, payload["user_id"], "Failed to schedule generation")
        return {"ok": False, "error": "fanout_failed"}

    return {"ok": True, "job_id": job_id, "chunks": len(chunks)}


@celery_app.task(
    bind=True,
    name="photoset.workers.tasks.generation.process_generation_chunk",
    time_limit=1800,
    soft_time_limit=1780,
)
def process_generation_chunk(
    self,
    job_id: int,
    user_id: int,
    avatar_id: int,
    style_id: str,
    prompts: list[str],
    reference_images: list[str],
    start_index: int = 0,
) -> dict:
    db: Session = SessionLocal()
    try:
        jobs = JobService(db)
        job = jobs.get(job_id)
        if not job:
            logger.error("generation_job_not_found", extra={"job_id": job_id})
            return {"ok": False, "error": "job_not_found"}
        if job.status in TERMINAL_JOB_STATUSES:
            logger.warning("generation_chunk_skipped", extra={"job_id": job_id, "reason": job.status})
            return {"ok": False, "skipped": job.status}
        if job.status == JOB_STATUS_PENDING:
            jobs.transition_if(job_id, JOB_STATUS_PENDING, JOB_STATUS_PROCESSING)

        catalog = get_prompt_catalog()
        provider = get_image_provider()
        references = reference_images[: settings.image_generation_max_references]
        succeeded = 0

        for offset, prompt in enumerate(prompts):
            photo_index = start_index + offset
            request = ImageGenerationRequest(
                prompt=catalog.compose(style_id, prompt),
                reference_images=references,
                aspect_ratio=settings.image_aspect_ratio,
            )
            try:
                result = generate_with_retry(provider, request, settings)
            except ImageGenerationError as e:
                generated_photos_total.labels(status="error").inc()
                jobs.increment_failed(job_id, f"Photo #{photo_index + 1} failed: {e}")
                continue

            db.add(
                GeneratedPhoto(
                    avatar_id=avatar_id,
                    job_id=job_id,
                    style_id=style_id,
                    prompt=prompt[:MAX_STORED_PROMPT_LENGTH],
                    image_url=result.image_url,
                )
            )
            db.commit()
            jobs.increment_completed(job_id)
            generated_photos_total.labels(status="success").inc()
            succeeded += 1

        logger.info(
            "generation_chunk_done",
            extra={
                "job_id": job_id,
                "chunk_start": start_index,
                "chunk_end": start_index + len(prompts),
                "total_photos": succeeded,
            },
        )
        finalized = finalize_if_done(db, job_id, user_id)
        return {"ok": True, "job_id": job_id, "succeeded": succeeded, "finalized": finalized}
    except Exception:
        logger.exception("generation_chunk_fatal", extra={"job_id": job_id})
        db.rollback()
        _fail_and_compensate(job_id, user_id, "Unexpected generation error", db=db)
        return {"ok": False, "error": "unexpected_error"}
    finally:
        db.close()


def finalize_if_done(db: Session, job_id: int, user_id: int) -> str | None:
    """Finalize once every photo is accounted for. Returns the final status if this call finalized."""
    jobs = JobService(db)
    job = jobs.get(job_id)
    if job is None or job.status != JOB_STATUS_PROCESSING:
        return None
    if job.completed_photos + job.failed_photos < job.total_photos:
        return None

    total = job.total_photos or 0
    ratio = job.completed_photos / total if total else 0.0
    if ratio >= settings.generation_min_success_ratio:
        if not jobs.transition_if(job_id, JOB_STATUS_PROCESSING, JOB_STATUS_COMPLETED):
            return None
        generation_jobs_completed_total.labels(style_id=job.style_id).inc()
        _update_avatar(db, job.avatar_id, job_id)
        logger.info(
            "generation_job_completed",
            extra={"job_id": job_id, "user_id": user_id, "total_photos": job.completed_photos},
        )
        return JOB_STATUS_COMPLETED

    message = f"{job.failed_photos} of {total} photos failed to generate"
    if not jobs.transition_if(job_id, JOB_STATUS_PROCESSING, JOB_STATUS_FAILED, message):
        return None
    generation_jobs_failed_total.labels(style_id=job.style_id, reason="low_success_ratio").inc()
    _update_avatar(db, job.avatar_id, job_id)
    CompensationService(db).compensate(user_id, job_id, REASON_GENERATION_FAILED)
    return JOB_STATUS_FAILED


def _update_avatar(db: Session, avatar_id: int, job_id: int) -> None:
    avatar = db.query(Avatar).filter(Avatar.id == avatar_id).one_or_none()
    if not avatar:
        return
    first_photo = (
        db.query(GeneratedPhoto.image_url)
        .filter(GeneratedPhoto.avatar_id == avatar_id)
        .order_by(GeneratedPhoto.created_at.asc(), GeneratedPhoto.id.asc())
        .first()
    )
    if first_photo:
        avatar.status = AVATAR_STATUS_READY
        if not avatar.thumbnail_url:
            avatar.thumbnail_url = first_photo[0]
    else:
        avatar.status = AVATAR_STATUS_DRAFT
    db.add(avatar)
    db.commit()


def _fail_and_compensate(job_id: int, user_id: int, message: str, db: Session | None = None) -> None:
    own_session = db is None
    db = db or SessionLocal()
    try:
        jobs = JobService(db)
        job = jobs.get(job_id)
        if job is None or job.status in TERMINAL_JOB_STATUSES:
            return
        if not jobs.transition_if(job_id, job.status, JOB_STATUS_FAILED, message):
            return
        generation_jobs_failed_total.labels(style_id=job.style_id, reason="worker_error").inc()
        _update_avatar(db, job.avatar_id, job_id)
        CompensationService(db).compensate(user_id, job_id, REASON_GENERATION_FAILED)
    except Exception:
        logger.exception("generation_fail_and_compensate_error", extra={"job_id": job_id})
        db.rollback()
    finally:
        if own_session:
            db.close()
