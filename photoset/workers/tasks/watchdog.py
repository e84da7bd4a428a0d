"""
Celery beat task: fail generation jobs that stopped making progress and refund them.
processing: no update for generation_stuck_minutes; pending: older than generation_pending_stuck_minutes.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_
from sqlalchemy.exc import ProgrammingError

from photoset.core.celery_app import celery_app
from photoset.core.config import settings
from photoset.db.session import SessionLocal
from photoset.models.avatar import Avatar
from photoset.models.generation_job import JOB_STATUS_FAILED, JOB_STATUS_PENDING, JOB_STATUS_PROCESSING, GenerationJob
from photoset.services.compensations.service import REASON_STUCK_JOB, CompensationService
from photoset.services.jobs.service import JobService
from photoset.utils.metrics import generation_jobs_failed_total

logger = logging.getLogger(__name__)

STUCK_ERROR_MESSAGE = "Generation timed out"


@celery_app.task(
    name="photoset.workers.tasks.watchdog.fail_stuck_generation_jobs",
    time_limit=120,
    soft_time_limit=110,
)
def fail_stuck_generation_jobs() -> dict:
    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)
        processing_cutoff = now - timedelta(minutes=settings.generation_stuck_minutes)
        pending_cutoff = now - timedelta(minutes=settings.generation_pending_stuck_minutes)

        stuck = (
            db.query(GenerationJob.id, GenerationJob.status, GenerationJob.style_id, Avatar.user_id)
            .join(Avatar, Avatar.id == GenerationJob.avatar_id)
            .filter(
                or_(
                    and_(
                        GenerationJob.status == JOB_STATUS_PROCESSING,
                        GenerationJob.updated_at < processing_cutoff,
                    ),
                    and_(
                        GenerationJob.status == JOB_STATUS_PENDING,
                        GenerationJob.created_at < pending_cutoff,
                    ),
                )
            )
            .all()
        )
        if not stuck:
            return {"ok": True, "failed_count": 0, "refunded_count": 0}

        jobs = JobService(db)
        compensations = CompensationService(db)
        failed_count = 0
        refunded_count = 0
        for job_id, status, style_id, user_id in stuck:
            if not jobs.transition_if(job_id, status, JOB_STATUS_FAILED, STUCK_ERROR_MESSAGE):
                continue
            failed_count += 1
            generation_jobs_failed_total.labels(style_id=style_id, reason="stuck").inc()
            result = compensations.compensate(user_id, job_id, REASON_STUCK_JOB)
            if result.refunded:
                refunded_count += 1

        logger.warning(
            "watchdog_failed_stuck_jobs",
            extra={"failed_count": failed_count, "refunded_count": refunded_count},
        )
        return {"ok": True, "failed_count": failed_count, "refunded_count": refunded_count}
    except ProgrammingError as e:
        msg = str(e.orig) if getattr(e, "orig", None) else str(e)
        db.rollback()
        if "does not exist" in msg or "UndefinedTable" in msg:
            return {"ok": True, "skipped": "table_not_found"}
        logger.exception("watchdog_generation_error")
        return {"ok": False}
    except Exception:
        logger.exception("watchdog_generation_error")
        db.rollback()
        return {"ok": False}
    finally:
        db.close()
