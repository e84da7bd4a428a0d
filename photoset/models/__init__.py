"""
Import every model so Base.metadata is complete (create_all, alembic autogenerate).
"""
from photoset.models.app_settings import AppSettings
from photoset.models.avatar import Avatar
from photoset.models.compensation import CompensationLog
from photoset.models.generated_photo import GeneratedPhoto
from photoset.models.generation_job import GenerationJob
from photoset.models.payment import Payment
from photoset.models.reference_image import ReferenceImage
from photoset.models.user import User

__all__ = [
    "AppSettings",
    "Avatar",
    "CompensationLog",
    "GeneratedPhoto",
    "GenerationJob",
    "Payment",
    "ReferenceImage",
    "User",
]
