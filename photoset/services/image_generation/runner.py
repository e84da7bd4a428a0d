"""
Generate-with-retry: bounded retry budget, jitter, failure classification, structured logging.
"""
import logging
import random
import time
from typing import Any

from photoset.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageGenerationError,
)
from photoset.services.image_generation.failure_types import classify_failure
from photoset.utils.metrics import image_generation_duration_seconds

logger = logging.getLogger(__name__)


def generate_with_retry(
    provider: ImageGenerationProvider,
    request: ImageGenerationRequest,
    settings: Any,
    *,
    sleep=time.sleep,
) -> ImageGenerationResponse:
    """At most image_generation_retry_max_attempts attempts; retries only when classification allows."""
    max_attempts = getattr(settings, "image_generation_retry_max_attempts", 2)
    backoff_seconds = getattr(settings, "image_generation_retry_backoff_seconds", 2.0)
    respect_retry_after = getattr(settings, "image_generation_retry_respect_retry_after", True)

    last_error: ImageGenerationError | None = None
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        started = time.monotonic()
        try:
            result = provider.generate(request)
            image_generation_duration_seconds.observe(time.monotonic() - started)
            if attempt > 1:
                logger.info(
                    "image_generation_success_after_retry",
                    extra={"attempt": attempt, "provider": provider.name},
                )
            return result
        except ImageGenerationError as e:
            last_error = e
            detail = e.detail
            http_status = detail.get("http_status")
            failure_type, retry_allowed = classify_failure(http_status, detail, str(e))
            detail["failure_type"] = failure_type.value

            logger.warning(
                "image_generation_failed",
                extra={
                    "attempt": attempt,
                    "provider": provider.name,
                    "failure_type": failure_type.value,
                    "retry_allowed": retry_allowed,
                    "error": str(e),
                },
            )

            if not retry_allowed or attempt >= max_attempts:
                raise

            delay = backoff_seconds
            if http_status == 429 and respect_retry_after and detail.get("retry_after"):
                try:
                    delay = float(detail["retry_after"])
                except (TypeError, ValueError):
                    pass
            delay += random.uniform(0, 1)
            logger.info(
                "image_generation_retry_scheduled",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": round(delay, 2),
                    "failure_type": failure_type.value,
                },
            )
            sleep(delay)

    if last_error is not None:
        raise last_error
    raise RuntimeError("generate_with_retry: no result and no error")
