from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(CamelModel):
    telegram_user_id: int | None = None
    avatar_id: int | str
    style_id: str
    reference_images: list[str] | None = None
    use_stored_references: bool = False
    photo_count: int | None = None


class RejectedImageOut(CamelModel):
    index: int
    reason: str


class GenerateResponse(CamelModel):
    success: bool = True
    job_id: int
    avatar_id: int
    total_photos: int
    processing_mode: str
    reference_images_used: int
    reference_images_rejected: int
    style: str


class Progress(CamelModel):
    completed: int
    total: int
    percentage: int


class JobStatusOut(CamelModel):
    job_id: int
    status: str
    progress: Progress
    error: str | None = None
    photos: list[str]
    created_at: str | None = None
    updated_at: str | None = None
