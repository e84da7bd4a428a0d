"""
Base classes and types for image generation providers.
The generator is opaque to the rest of the system: prompt + reference images in, image URL out.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ImageGenerationRequest:
    """Request for image generation."""
    prompt: str
    reference_images: list[str] = field(default_factory=list)
    model: str | None = None
    aspect_ratio: str | None = None
    seed: int | None = None
    extra_params: dict[str, Any] | None = None


@dataclass
class ImageGenerationResponse:
    """Response from image generation."""
    image_url: str
    model: str
    provider: str
    raw_response_sanitized: dict[str, Any] | None = None


class ImageGenerationError(Exception):
    """Raised when generation fails; detail holds http_status / retry_after / provider error for the runner."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


def sanitize_response_for_log(result: dict[str, Any]) -> dict[str, Any]:
    """Copy of a provider response safe for logging (inline data URLs replaced)."""
    if not result:
        return {}
    out = _sanitize_value(result)
    return out if isinstance(out, dict) else {}


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("data:"):
        return value.split(",", 1)[0] + ",[REDACTED]"
    if isinstance(value, dict):
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    return value


class ImageGenerationProvider(ABC):
    """Base class for image generation providers."""

    name = "base"

    def __init__(self, config: dict) -> None:
        self.config = config

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured and available."""
        pass

    @abstractmethod
    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        """Generate image from request. Raises ImageGenerationError on failure."""
        pass
