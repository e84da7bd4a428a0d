import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from photoset.core.errors import ServiceError
from photoset.models.compensation import CompensationLog
from photoset.models.generation_job import JOB_STATUS_FAILED
from photoset.models.payment import Payment
from photoset.services.jobs.service import JobService
from photoset.services.payments.gateway import PaymentGatewayError
from photoset.services.payments.service import PaymentConflictError, PaymentService
from photoset.utils.metrics import compensation_inconsistencies_total, refunds_total

logger = logging.getLogger(__name__)

REASON_QUEUE_FAILED = "queue_failed"
REASON_QUEUE_UNAVAILABLE = "queue_unavailable"
REASON_GENERATION_FAILED = "generation_failed"
REASON_STUCK_JOB = "stuck_job"

REFUND_REASONS = {
    REASON_QUEUE_FAILED: "Автовозврат: не удалось поставить генерацию в очередь",
    REASON_QUEUE_UNAVAILABLE: "Автовозврат: сервис генерации недоступен",
    REASON_GENERATION_FAILED: "Автовозврат: генерация не удалась",
    REASON_STUCK_JOB: "Автовозврат: генерация зависла",
}


@dataclass
class CompensationResult:
    refunded: bool
    payment_id: int | None = None
    error: str | None = None


class CompensationService:
    def __init__(self, db: DBSession, payments: PaymentService | None = None):
        self.db = db
        self.payments = payments or PaymentService(db)
        self.jobs = JobService(db)

    def compensate(self, user_id: int, job_id: int | None, reason: str) -> CompensationResult:
        """
        Refund the payment behind a failed job. Never raises.
        Prefers the payment linked to the job, else the user's latest succeeded payment.
        """
        try:
            result = self._compensate(user_id, job_id, reason)
        except Exception as e:
            logger.exception(
                "compensation_unexpected_error",
                extra={"user_id": user_id, "job_id": job_id, "reason": reason},
            )
            result = CompensationResult(refunded=False, error=f"unexpected: {type(e).__name__}")
            self.db.rollback()

        self._write_log(user_id, job_id, reason, result)
        return result

    def _compensate(self, user_id: int, job_id: int | None, reason: str) -> CompensationResult:
        payment = self._find_payment(user_id, job_id)
        if payment is None:
            refunds_total.labels(outcome="no_payment").inc()
            logger.warning(
                "compensation_no_payment",
                extra={"user_id": user_id, "job_id": job_id, "reason": reason},
            )
            return CompensationResult(refunded=False)

        payment_id = payment.id
        try:
            self.payments.refund(payment_id, reason=REFUND_REASONS.get(reason, reason))
        except PaymentConflictError as e:
            logger.warning(
                "compensation_refund_rejected",
                extra={"user_id": user_id, "job_id": job_id, "payment_id": payment_id, "reason": e.reason},
            )
            return CompensationResult(refunded=False, payment_id=payment_id, error=e.reason)
        except PaymentGatewayError as e:
            # job is failed but the customer still holds a charge
            compensation_inconsistencies_total.inc()
            logger.error(
                "compensation_refund_failed",
                extra={"user_id": user_id, "job_id": job_id, "payment_id": payment_id, "error": str(e)},
            )
            return CompensationResult(refunded=False, payment_id=payment_id, error="gateway_error")
        except ServiceError as e:
            logger.error(
                "compensation_refund_failed",
                extra={"user_id": user_id, "job_id": job_id, "payment_id": payment_id, "error": e.message},
            )
            return CompensationResult(refunded=False, payment_id=payment_id, error=e.code.value)

        self._ensure_job_failed(job_id, payment_id, reason)
        logger.info(
            "compensation_refunded",
            extra={"user_id": user_id, "job_id": job_id, "payment_id": payment_id, "reason": reason},
        )
        return CompensationResult(refunded=True, payment_id=payment_id)

    def _find_payment(self, user_id: int, job_id: int | None) -> Payment | None:
        if job_id is not None:
            job = self.jobs.get(job_id)
            if job is not None and job.payment_id is not None:
                linked = self.payments.get_payment(job.payment_id)
                if linked is not None:
                    return linked
            funding = self.payments.get_by_generation_job(job_id)
            if funding is not None:
                return funding
        return self.payments.get_latest_succeeded(user_id)

    def _ensure_job_failed(self, job_id: int | None, payment_id: int, reason: str) -> None:
        if job_id is None:
            return
        try:
            job = self.jobs.get(job_id)
            if job is not None and job.status != JOB_STATUS_FAILED:
                self.jobs.mark_failed(job, f"Compensated: {reason}")
        except Exception as e:
            # refund went through but the job row does not say so
            self.db.rollback()
            compensation_inconsistencies_total.inc()
            logger.error(
                "compensation_job_update_failed",
                extra={"job_id": job_id, "payment_id": payment_id, "error": str(e)},
            )

    def _write_log(self, user_id: int, job_id: int | None, reason: str, result: CompensationResult) -> None:
        try:
            self.db.add(
                CompensationLog(
                    user_id=user_id,
                    job_id=job_id,
                    payment_id=result.payment_id,
                    reason=reason,
                    refunded=result.refunded,
                    error=result.error,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("compensation_log_write_failed", extra={"job_id": job_id, "user_id": user_id})
