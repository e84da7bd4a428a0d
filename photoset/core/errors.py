"""
Error taxonomy for the generation API.
Services raise ServiceError subclasses; photoset.main renders them as
{"success": false, "error": CODE, "message": ..., **details}.
"""
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    # Client errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    # Domain
    INVALID_STYLE = "INVALID_STYLE"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    AVATAR_NOT_FOUND = "AVATAR_NOT_FOUND"
    NO_REFERENCE_IMAGES = "NO_REFERENCE_IMAGES"
    NO_PROMPTS_AVAILABLE = "NO_PROMPTS_AVAILABLE"
    # Dispatch / infrastructure
    QUEUE_FAILED = "QUEUE_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INVALID_STYLE: 400,
    ErrorCode.PAYMENT_REQUIRED: 402,
    ErrorCode.AVATAR_NOT_FOUND: 404,
    ErrorCode.NO_REFERENCE_IMAGES: 400,
    ErrorCode.NO_PROMPTS_AVAILABLE: 409,
    ErrorCode.QUEUE_FAILED: 500,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ServiceError(Exception):
    """Domain failure with a stable code; details are merged into the response body."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return ERROR_STATUS.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.code.value,
            "message": self.message,
            **self.details,
        }


class ValidationError(ServiceError):
    code = ErrorCode.VALIDATION_ERROR


class UnauthorizedError(ServiceError):
    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(ServiceError):
    code = ErrorCode.FORBIDDEN


class NotFoundError(ServiceError):
    code = ErrorCode.NOT_FOUND


class InvalidStyleError(ServiceError):
    code = ErrorCode.INVALID_STYLE


class PaymentRequiredError(ServiceError):
    code = ErrorCode.PAYMENT_REQUIRED


class AvatarNotFoundError(ServiceError):
    code = ErrorCode.AVATAR_NOT_FOUND


class NoReferenceImagesError(ServiceError):
    code = ErrorCode.NO_REFERENCE_IMAGES


class NoPromptsAvailableError(ServiceError):
    code = ErrorCode.NO_PROMPTS_AVAILABLE


class DispatchError(ServiceError):
    """Queue publish failed after the job row exists. details always carry `refunded`."""

    code = ErrorCode.QUEUE_FAILED
