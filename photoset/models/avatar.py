from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from photoset.db.base import Base


AVATAR_STATUS_DRAFT = "draft"
AVATAR_STATUS_PROCESSING = "processing"
AVATAR_STATUS_READY = "ready"


class Avatar(Base):
    """Named photo project. Owner (user_id) is fixed at creation."""

    __tablename__ = "avatars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False, default="Мой аватар")
    status = Column(String, nullable=False, default=AVATAR_STATUS_DRAFT)
    thumbnail_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
