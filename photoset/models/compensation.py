from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from photoset.db.base import Base


class CompensationLog(Base):
    """One row per compensation attempt, successful or not."""

    __tablename__ = "compensation_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    job_id = Column(Integer, nullable=True, index=True)
    payment_id = Column(Integer, nullable=True)
    reason = Column(String, nullable=False)
    refunded = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
