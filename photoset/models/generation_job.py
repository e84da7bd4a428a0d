from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from photoset.db.base import Base


JOB_STATUS_PENDING = "pending"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

TERMINAL_JOB_STATUSES = frozenset({JOB_STATUS_COMPLETED, JOB_STATUS_FAILED})


class GenerationJob(Base):
    __tablename__ = "generation_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    avatar_id = Column(Integer, ForeignKey("avatars.id"), nullable=False, index=True)
    style_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default=JOB_STATUS_PENDING, index=True)
    total_photos = Column(Integer, nullable=False, default=0)
    completed_photos = Column(Integer, nullable=False, default=0)
    failed_photos = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)  # платёж, оплативший генерацию
    queue_message_id = Column(String, nullable=True)  # id задачи Celery после успешной публикации
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
