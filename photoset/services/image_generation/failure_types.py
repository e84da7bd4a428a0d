"""
Failure normalization for the image generation runner.
Classifies provider and transport failures for retry policy and observability.
"""
from enum import Enum
from typing import Any


class FailureType(str, Enum):
    TRANSPORT_TRANSIENT = "transport_transient"  # 429, 5xx, timeout, network
    CONTENT_BLOCKED = "content_blocked"  # NSFW / safety filter
    CLIENT_NON_RETRIABLE = "client_non_retriable"  # 4xx except 429, bad input
    PROVIDER_FAILED = "provider_failed"  # prediction failed without a clear reason


# Substrings of provider error text that mean the output was filtered
BLOCKED_MARKERS = ("nsfw", "sensitive", "safety", "flagged")


def classify_failure(
    http_status: int | None,
    detail: dict[str, Any],
    message: str = "",
) -> tuple[FailureType, bool]:
    """Returns (failure_type, retry_allowed)."""
    if http_status is not None:
        if http_status == 429:
            return (FailureType.TRANSPORT_TRANSIENT, True)
        if 500 <= http_status < 600:
            return (FailureType.TRANSPORT_TRANSIENT, True)
        if 400 <= http_status < 500:
            return (FailureType.CLIENT_NON_RETRIABLE, False)

    if detail.get("timeout"):
        return (FailureType.TRANSPORT_TRANSIENT, True)

    provider_error = str(detail.get("provider_error") or message or "").lower()
    if any(marker in provider_error for marker in BLOCKED_MARKERS):
        return (FailureType.CONTENT_BLOCKED, False)

    if detail.get("prediction_status") == "failed":
        return (FailureType.PROVIDER_FAILED, True)

    # No detail (e.g. network error): transient
    if not detail:
        return (FailureType.TRANSPORT_TRANSIENT, True)

    return (FailureType.PROVIDER_FAILED, False)
