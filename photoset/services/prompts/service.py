import logging

from sqlalchemy.orm import Session

from photoset.core.errors import NoPromptsAvailableError
from photoset.models.generated_photo import GeneratedPhoto
from photoset.schemas.catalog import PromptCatalog

logger = logging.getLogger(__name__)

# Stored prompts are compared to catalog entries by prefix.
PROMPT_MATCH_PREFIX_LENGTH = 100


class PromptDeduplicator:
    """Picks catalog prompts this avatar has not yet been generated with for a style."""

    def __init__(self, db: Session, catalog: PromptCatalog):
        self.db = db
        self.catalog = catalog

    def used_prompts(self, avatar_id: int, style_id: str) -> list[str]:
        rows = (
            self.db.query(GeneratedPhoto.prompt)
            .filter(
                GeneratedPhoto.avatar_id == avatar_id,
                GeneratedPhoto.style_id == style_id,
                GeneratedPhoto.prompt.isnot(None),
            )
            .all()
        )
        return [row[0] for row in rows]

    def available_prompts(self, avatar_id: int, style_id: str, requested_count: int) -> list[str]:
        """
        Unused catalog prompts in catalog order, at most requested_count.
        Raises NoPromptsAvailableError when every prompt of the style is used.
        """
        catalog_prompts = self.catalog.style_prompts(style_id)
        used = self.used_prompts(avatar_id, style_id)

        available = [
            prompt
            for prompt in catalog_prompts
            if not _is_used(prompt, used)
        ]

        logger.info(
            "prompt_dedup_result",
            extra={
                "avatar_id": avatar_id,
                "style_id": style_id,
                "total_photos": len(available),
            },
        )
        if not available:
            raise NoPromptsAvailableError(
                "Все промпты этого стиля уже использованы для аватара",
                details={"usedPrompts": len(used), "totalPrompts": len(catalog_prompts)},
            )
        return available[: max(requested_count, 0)]


def _is_used(prompt: str, used: list[str]) -> bool:
    prefix = prompt[:PROMPT_MATCH_PREFIX_LENGTH]
    return any(stored.startswith(prefix) for stored in used)
