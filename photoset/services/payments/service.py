"""
PaymentService: платежи T-Bank, которые оплачивают генерацию.

Ответственности:
- Проверка оплаты (entitlement) перед запуском генерации
- Возврат (полный или частичный) через T-Bank Cancel под атомарной блокировкой
- Обработка уведомлений T-Bank (единственный источник статуса succeeded)
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from photoset.core.config import settings
from photoset.core.errors import ErrorCode, NotFoundError, ServiceError, ValidationError
from photoset.models.payment import (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUS_SUCCEEDED,
    REFUND_STATUS_COMPLETED,
    REFUND_STATUS_FAILED,
    REFUND_STATUS_NONE,
    REFUND_STATUS_PROCESSING,
    Payment,
)
from photoset.services.payments.gateway import PaymentGatewayError, TBankClient
from photoset.services.payments.signature import verify_notification
from photoset.utils.metrics import payment_webhooks_total, refunds_total

logger = logging.getLogger(__name__)

DEFAULT_REFUND_REASON = "По запросу"


class PaymentConflictError(ServiceError):
    """Refund lock not acquired: payment is not refundable or a refund already ran."""

    code = ErrorCode.CONFLICT

    def __init__(self, message: str, reason: str):
        super().__init__(message, details={"reason": reason})
        self.reason = reason


@dataclass
class RefundResult:
    payment_id: int
    amount: Decimal
    provider_refund_id: str | None = None


def to_kopeks(amount: Decimal | float | int) -> int:
    """Major units -> minor units, half-up."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    def __init__(self, db: Session, gateway: TBankClient | None = None):
        self.db = db
        self._gateway = gateway

    @property
    def gateway(self) -> TBankClient:
        if self._gateway is None:
            self._gateway = TBankClient.from_settings()
        return self._gateway

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: int) -> Payment | None:
        return self.db.query(Payment).filter(Payment.id == payment_id).one_or_none()

    def get_by_generation_job(self, job_id: int) -> Payment | None:
        return self.db.query(Payment).filter(Payment.generation_job_id == job_id).first()

    def has_entitlement(self, user_id: int) -> bool:
        """True iff the user has at least one succeeded payment."""
        return (
            self.db.query(Payment.id)
            .filter(Payment.user_id == user_id, Payment.status == PAYMENT_STATUS_SUCCEEDED)
            .first()
            is not None
        )

    def get_latest_succeeded(self, user_id: int) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id, Payment.status == PAYMENT_STATUS_SUCCEEDED)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .first()
        )

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def refund(
        self,
        payment_id: int,
        amount: Decimal | None = None,
        reason: str = DEFAULT_REFUND_REASON,
    ) -> RefundResult:
        """
        Возврат через T-Bank Cancel. amount=None означает полный возврат.
        Raises: NotFoundError, ValidationError, PaymentConflictError (lock lost),
        PaymentGatewayError (lock released to refund_status=failed).
        """
        payment = self.get_payment(payment_id)
        if not payment:
            raise NotFoundError("Платёж не найден")

        full_amount = Decimal(str(payment.amount))
        refund_amount = full_amount if amount is None else Decimal(str(amount))
        if refund_amount <= 0 or refund_amount > full_amount:
            raise ValidationError("Некорректная сумма возврата", details={"amount": str(refund_amount)})

        self._acquire_refund_lock(payment)

        provider_payment_id = payment.provider_payment_id
        try:
            if not provider_payment_id:
                raise PaymentGatewayError("Payment missing T-Bank ID. Manual refund required.")
            amount_kopeks = to_kopeks(refund_amount)
            result = self.gateway.cancel_payment(
                provider_payment_id,
                amount_kopeks=None if amount is None else amount_kopeks,
                receipt=self._build_refund_receipt(amount_kopeks, reason),
            )
        except PaymentGatewayError as e:
            self._release_refund_lock(payment_id)
            refunds_total.labels(outcome="gateway_error").inc()
            logger.error(
                "payment_refund_gateway_error",
                extra={"payment_id": payment_id, "error": str(e)},
            )
            raise
        except Exception as e:
            # lock must not outlive the attempt, whatever failed
            self.db.rollback()
            self._release_refund_lock(payment_id)
            refunds_total.labels(outcome="gateway_error").inc()
            logger.exception(
                "payment_refund_unexpected_error",
                extra={"payment_id": payment_id, "error": f"{type(e).__name__}: {e}"},
            )
            raise PaymentGatewayError(
                f"Refund failed: {type(e).__name__}",
                detail={"error_type": type(e).__name__},
            ) from e

        payment = self.get_payment(payment_id)
        payment.status = PAYMENT_STATUS_REFUNDED
        payment.refund_status = REFUND_STATUS_COMPLETED
        payment.refund_reason = reason
        payment.refund_amount = refund_amount
        payment.refunded_at = datetime.now(timezone.utc)
        self.db.add(payment)
        self.db.commit()

        refunds_total.labels(outcome="succeeded").inc()
        logger.info(
            "payment_refunded",
            extra={"payment_id": payment_id, "user_id": payment.user_id, "reason": reason},
        )
        provider_refund_id = result.get("PaymentId")
        return RefundResult(
            payment_id=payment_id,
            amount=refund_amount,
            provider_refund_id=str(provider_refund_id) if provider_refund_id is not None else None,
        )

    def _acquire_refund_lock(self, payment: Payment) -> None:
        """Атомарно: succeeded + refund_status не processing/completed -> processing."""
        payment_id = payment.id
        status, refund_status = payment.status, payment.refund_status
        result = self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PAYMENT_STATUS_SUCCEEDED,
                func.coalesce(Payment.refund_status, REFUND_STATUS_NONE).notin_(
                    [REFUND_STATUS_PROCESSING, REFUND_STATUS_COMPLETED]
                ),
            )
            .values(refund_status=REFUND_STATUS_PROCESSING)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            return

        if status == PAYMENT_STATUS_REFUNDED or refund_status == REFUND_STATUS_COMPLETED:
            lock_reason = "already_refunded"
        elif refund_status == REFUND_STATUS_PROCESSING:
            lock_reason = "refund_in_progress"
        else:
            lock_reason = "not_refundable"
        refunds_total.labels(outcome="conflict").inc()
        logger.warning(
            "payment_refund_lock_rejected",
            extra={"payment_id": payment_id, "reason": lock_reason},
        )
        raise PaymentConflictError("Возврат невозможен", reason=lock_reason)

    def _release_refund_lock(self, payment_id: int) -> None:
        self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.refund_status == REFUND_STATUS_PROCESSING)
            .values(refund_status=REFUND_STATUS_FAILED)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    @staticmethod
    def _build_refund_receipt(amount_kopeks: int, reason: str) -> dict[str, Any]:
        """Чек возврата (54-ФЗ)."""
        return {
            "Email": settings.refund_receipt_email,
            "Taxation": settings.refund_receipt_taxation,
            "Items": [
                {
                    "Name": f"Возврат - Photoset ({reason})",
                    "Price": amount_kopeks,
                    "Quantity": 1,
                    "Amount": amount_kopeks,
                    "Tax": "none",
                    "PaymentMethod": "full_payment",
                    "PaymentObject": "service",
                }
            ],
        }

    # ------------------------------------------------------------------
    # Gateway notifications
    # ------------------------------------------------------------------

    def process_notification(self, payload: dict[str, Any]) -> bool:
        """
        Apply a T-Bank notification. Returns False when the signature is invalid;
        unknown payments and unhandled statuses are logged and acknowledged.
        """
        if not verify_notification(payload, settings.tbank_password):
            payment_webhooks_total.labels(status="invalid_signature").inc()
            logger.warning("payment_webhook_invalid_signature")
            return False

        gateway_status = str(payload.get("Status") or "").upper()
        payment = self._find_by_gateway_ids(payload)
        if not payment:
            payment_webhooks_total.labels(status="unknown_payment").inc()
            logger.warning(
                "payment_webhook_unknown_payment",
                extra={"payment_id": payload.get("PaymentId"), "reason": gateway_status},
            )
            return True

        if gateway_status == "CONFIRMED":
            if payment.status == PAYMENT_STATUS_PENDING:
                payment.status = PAYMENT_STATUS_SUCCEEDED
                if not payment.provider_payment_id and payload.get("PaymentId") is not None:
                    payment.provider_payment_id = str(payload["PaymentId"])
                self.db.add(payment)
                self.db.commit()
                logger.info(
                    "payment_succeeded",
                    extra={"payment_id": payment.id, "user_id": payment.user_id},
                )
        elif gateway_status == "REFUNDED":
            if payment.status != PAYMENT_STATUS_REFUNDED:
                payment.status = PAYMENT_STATUS_REFUNDED
                payment.refund_status = REFUND_STATUS_COMPLETED
                payment.refunded_at = payment.refunded_at or datetime.now(timezone.utc)
                self.db.add(payment)
                self.db.commit()
                logger.info(
                    "payment_refund_confirmed",
                    extra={"payment_id": payment.id, "user_id": payment.user_id},
                )
        payment_webhooks_total.labels(status=gateway_status.lower() or "empty").inc()
        return True

    def _find_by_gateway_ids(self, payload: dict[str, Any]) -> Payment | None:
        provider_payment_id = payload.get("PaymentId")
        if provider_payment_id is not None:
            payment = (
                self.db.query(Payment)
                .filter(Payment.provider_payment_id == str(provider_payment_id))
                .one_or_none()
            )
            if payment:
                return payment
        order_id = payload.get("OrderId")
        if order_id:
            return self.db.query(Payment).filter(Payment.order_id == str(order_id)).one_or_none()
        return None
