"""
Payment model: gateway payments that fund generation.
status: pending -> succeeded (webhook only) -> refunded (compensation / admin refund).
refund_status is the refund lock: none -> processing -> completed | failed.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from photoset.db.base import Base


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_SUCCEEDED = "succeeded"
PAYMENT_STATUS_REFUNDED = "refunded"

REFUND_STATUS_NONE = "none"
REFUND_STATUS_PROCESSING = "processing"
REFUND_STATUS_COMPLETED = "completed"
REFUND_STATUS_FAILED = "failed"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String, nullable=False, default="tbank")
    provider_payment_id = Column(String, nullable=True, unique=True)  # PaymentId в T-Bank
    order_id = Column(String, nullable=True, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)  # в рублях
    currency = Column(String, nullable=False, default="RUB")
    status = Column(String, nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    generation_job_id = Column(Integer, nullable=True, index=True)  # последняя генерация, оплаченная этим платежом

    refund_status = Column(String, nullable=False, default=REFUND_STATUS_NONE)
    refund_reason = Column(Text, nullable=True)
    refund_amount = Column(Numeric(12, 2), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
