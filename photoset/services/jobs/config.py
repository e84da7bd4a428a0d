from dataclasses import dataclass

from photoset.core.config import settings


@dataclass(frozen=True)
class GenerationConfig:
    max_photos: int
    max_reference_images: int
    min_reference_images: int
    chunk_size: int
    max_concurrent: int
    chunk_delay_ms: int
    task_creation_delay_ms: int
    min_success_ratio: float


def get_generation_config() -> GenerationConfig:
    return GenerationConfig(
        max_photos=settings.generation_max_photos,
        max_reference_images=settings.generation_max_reference_images,
        min_reference_images=settings.generation_min_reference_images,
        chunk_size=settings.generation_chunk_size,
        max_concurrent=settings.generation_max_concurrent_chunks,
        chunk_delay_ms=settings.generation_chunk_delay_ms,
        task_creation_delay_ms=settings.generation_task_creation_delay_ms,
        min_success_ratio=settings.generation_min_success_ratio,
    )


def clamp_photo_count(requested: int | None, max_photos: int) -> int:
    """Missing or non-positive -> max_photos; otherwise clamped to 1..max_photos."""
    if requested is None or requested <= 0:
        return max_photos
    return max(1, min(requested, max_photos))
