"""
Image generation: opaque provider interface, Replicate implementation, retry runner.
"""
from .base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageGenerationError,
)
from .failure_types import FailureType, classify_failure
from .providers.replicate import ReplicateProvider
from .runner import generate_with_retry

__all__ = [
    "ImageGenerationProvider",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "ImageGenerationError",
    "FailureType",
    "classify_failure",
    "ReplicateProvider",
    "generate_with_retry",
]
