"""
Reference image quality filter.
Size is estimated from the base64 length; URLs of already-uploaded images pass as "medium".
"""
from dataclasses import dataclass, field

MIN_SIZE_KB = 10
MAX_SIZE_KB = 10 * 1024
HIGH_QUALITY_KB = 500
LOW_QUALITY_KB = 50

VALID_PREFIXES = (
    "data:image/jpeg",
    "data:image/png",
    "data:image/webp",
    "/9j/",  # JPEG magic bytes
    "iVBOR",  # PNG magic bytes
)

QUALITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class ImageValidationResult:
    is_valid: bool
    quality: str
    issues: list[str] = field(default_factory=list)
    size_kb: int = 0


@dataclass
class RejectedImage:
    index: int
    reason: str

    def to_dict(self) -> dict:
        return {"index": self.index, "reason": self.reason}


@dataclass
class FilteredImages:
    selected: list[str]
    rejected: list[RejectedImage]


def is_remote_url(image: str) -> bool:
    return image.startswith("http://") or image.startswith("https://")


def validate_image(image: str) -> ImageValidationResult:
    if is_remote_url(image):
        return ImageValidationResult(is_valid=True, quality="medium")

    issues: list[str] = []
    size_kb = round(len(image) * 0.75 / 1024)
    if size_kb < MIN_SIZE_KB:
        issues.append("Image too small (< 10KB)")
    if size_kb > MAX_SIZE_KB:
        issues.append("Image too large (> 10MB)")

    quality = "medium"
    if size_kb > HIGH_QUALITY_KB:
        quality = "high"
    elif size_kb < LOW_QUALITY_KB:
        quality = "low"

    if not image.startswith(VALID_PREFIXES):
        issues.append("Invalid image format")

    return ImageValidationResult(
        is_valid=not issues,
        quality=quality,
        issues=issues,
        size_kb=size_kb,
    )


def filter_and_sort_images(images: list[str], max_images: int) -> FilteredImages:
    """Drop invalid images, order the rest high -> medium -> low (stable), cap at max_images."""
    results = [(index, image, validate_image(image)) for index, image in enumerate(images)]
    rejected = [
        RejectedImage(index=index, reason=", ".join(result.issues))
        for index, _, result in results
        if not result.is_valid
    ]
    valid = sorted(
        (item for item in results if item[2].is_valid),
        key=lambda item: QUALITY_ORDER[item[2].quality],
    )
    return FilteredImages(
        selected=[image for _, image, _ in valid[:max_images]],
        rejected=rejected,
    )
