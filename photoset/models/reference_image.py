from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text

from photoset.db.base import Base


class ReferenceImage(Base):
    """Append-only: a newer upload supersedes older rows, nothing is updated in place."""

    __tablename__ = "reference_photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    avatar_id = Column(Integer, ForeignKey("avatars.id"), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
