"""
Avatar & reference resolution for a generation request.

The client sends either a persisted avatar id or a client-side placeholder
(usually Date.now()). The hint is parsed once into ExistingAvatarId / NewAvatarRequest.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from photoset.core.config import settings
from photoset.core.errors import AvatarNotFoundError, NoReferenceImagesError
from photoset.models.avatar import AVATAR_STATUS_DRAFT, Avatar
from photoset.models.reference_image import ReferenceImage
from photoset.services.images.validation import RejectedImage, filter_and_sort_images

logger = logging.getLogger(__name__)

# Postgres INTEGER upper bound; anything larger is a client-side placeholder
MAX_PERSISTED_ID = 2_147_483_647
DEFAULT_AVATAR_NAME = "Мой аватар"

_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ExistingAvatarId:
    id: int


@dataclass(frozen=True)
class NewAvatarRequest:
    raw: str | None = None


AvatarHint = ExistingAvatarId | NewAvatarRequest


def parse_avatar_hint(value: Any) -> AvatarHint:
    if isinstance(value, bool) or value is None:
        return NewAvatarRequest(raw=None if value is None else str(value))
    if isinstance(value, int):
        candidate = value
    else:
        text = str(value).strip()
        if not _DIGITS.match(text):
            return NewAvatarRequest(raw=text)
        candidate = int(text)
    if 1 <= candidate <= MAX_PERSISTED_ID:
        return ExistingAvatarId(id=candidate)
    return NewAvatarRequest(raw=str(value))


@dataclass
class ReferenceSaveResult:
    index: int
    success: bool
    reference_id: int | None = None
    error: str | None = None


@dataclass
class ResolvedAvatar:
    avatar_id: int
    reference_images: list[str]
    rejected: list[RejectedImage] = field(default_factory=list)
    created: bool = False
    saved_references: list[ReferenceSaveResult] = field(default_factory=list)


class AvatarService:
    def __init__(self, db: Session):
        self.db = db

    def get_owned(self, avatar_id: int, user_id: int) -> Avatar | None:
        return (
            self.db.query(Avatar)
            .filter(Avatar.id == avatar_id, Avatar.user_id == user_id)
            .one_or_none()
        )

    def create(self, user_id: int, name: str = DEFAULT_AVATAR_NAME) -> Avatar:
        avatar = Avatar(user_id=user_id, name=name, status=AVATAR_STATUS_DRAFT)
        self.db.add(avatar)
        self.db.commit()
        self.db.refresh(avatar)
        logger.info("avatar_created", extra={"avatar_id": avatar.id, "user_id": user_id})
        return avatar

    def stored_reference_urls(self, avatar_id: int, limit: int | None = None) -> list[str]:
        query = (
            self.db.query(ReferenceImage.image_url)
            .filter(ReferenceImage.avatar_id == avatar_id)
            .order_by(ReferenceImage.created_at.desc(), ReferenceImage.id.desc())
        )
        if limit:
            query = query.limit(limit)
        # newest N, returned oldest first
        return [row[0] for row in reversed(query.all())]

    def save_references(self, avatar_id: int, images: list[str]) -> list[ReferenceSaveResult]:
        """Insert each image in its own savepoint; a failed row does not abort the rest."""
        results: list[ReferenceSaveResult] = []
        for index, image in enumerate(images):
            try:
                with self.db.begin_nested():
                    ref = ReferenceImage(avatar_id=avatar_id, image_url=image)
                    self.db.add(ref)
                    self.db.flush()
                results.append(ReferenceSaveResult(index=index, success=True, reference_id=ref.id))
            except SQLAlchemyError as e:
                logger.warning(
                    "reference_image_save_failed",
                    extra={"avatar_id": avatar_id, "error": f"#{index}: {e}"},
                )
                results.append(ReferenceSaveResult(index=index, success=False, error=str(e)))
        self.db.commit()
        return results

    def resolve(
        self,
        user_id: int,
        avatar_hint: AvatarHint,
        reference_images: list[str] | None,
        use_stored_references: bool = False,
    ) -> ResolvedAvatar:
        if use_stored_references:
            return self._resolve_stored(user_id, avatar_hint)

        filtered = filter_and_sort_images(reference_images or [], settings.generation_max_reference_images)
        if filtered.rejected:
            logger.warning(
                "reference_images_rejected",
                extra={"user_id": user_id, "reason": f"{len(filtered.rejected)} rejected"},
            )
        if len(filtered.selected) < settings.generation_min_reference_images:
            raise NoReferenceImagesError(
                "Нет подходящих референсных фото. Загрузите чёткие фотографии.",
                details={"rejectedImages": [r.to_dict() for r in filtered.rejected]},
            )

        avatar = None
        if isinstance(avatar_hint, ExistingAvatarId):
            avatar = self.get_owned(avatar_hint.id, user_id)
        created = avatar is None
        if avatar is None:
            avatar = self.create(user_id)

        saved = self.save_references(avatar.id, filtered.selected)
        return ResolvedAvatar(
            avatar_id=avatar.id,
            reference_images=filtered.selected,
            rejected=filtered.rejected,
            created=created,
            saved_references=saved,
        )

    def _resolve_stored(self, user_id: int, avatar_hint: AvatarHint) -> ResolvedAvatar:
        if not isinstance(avatar_hint, ExistingAvatarId):
            raise AvatarNotFoundError("Аватар не найден")
        avatar = self.get_owned(avatar_hint.id, user_id)
        if not avatar:
            raise AvatarNotFoundError("Аватар не найден")
        urls = self.stored_reference_urls(avatar.id, limit=settings.generation_max_reference_images)
        if len(urls) < settings.generation_min_reference_images:
            raise NoReferenceImagesError(
                "У аватара нет сохранённых референсных фото",
                details={"rejectedImages": []},
            )
        return ResolvedAvatar(avatar_id=avatar.id, reference_images=urls)
