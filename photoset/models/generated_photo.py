from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from photoset.db.base import Base


class GeneratedPhoto(Base):
    """Written by the generation worker only. `prompt` is the raw catalog text (<= 500 chars)."""

    __tablename__ = "generated_photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    avatar_id = Column(Integer, ForeignKey("avatars.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("generation_jobs.id"), nullable=True, index=True)
    style_id = Column(String, nullable=False)
    prompt = Column(Text, nullable=True)
    image_url = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
