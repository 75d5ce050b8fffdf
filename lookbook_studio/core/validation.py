"""
Input Validation Module
Validates uploaded images and form input before they enter session state.
"""
import io
import logging
from typing import Optional
from PIL import Image

from lookbook_studio.core.images import ImageRef

logger = logging.getLogger(__name__)

# Configuration
DEFAULT_MAX_FILE_SIZE_MB = 10
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}


class ValidationError(Exception):
    """Custom exception for validation errors."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


def validate_file_size(content: bytes, max_mb: int = DEFAULT_MAX_FILE_SIZE_MB) -> None:
    """
    Check if file size is within limits.

    Raises:
        ValidationError: If file exceeds max_mb
    """
    size_mb = len(content) / (1024 * 1024)
    if len(content) > max_mb * 1024 * 1024:
        raise ValidationError(
            f"File too large: {size_mb:.1f}MB (max {max_mb}MB)",
            status_code=413
        )
    if not content:
        raise ValidationError("Empty file", status_code=400)
    logger.debug(f"File size OK: {size_mb:.2f}MB")


def validate_mime_type(content_type: Optional[str]) -> str:
    """
    Check if MIME type is allowed.

    Returns:
        Normalized MIME type

    Raises:
        ValidationError: If MIME type is not in ALLOWED_MIME_TYPES
    """
    if content_type is None:
        raise ValidationError("Missing Content-Type header", status_code=415)

    # Normalize content type (remove charset etc.)
    mime = content_type.split(";")[0].strip().lower()

    if mime not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"Unsupported file type: {mime}. Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}",
            status_code=415
        )
    logger.debug(f"MIME type OK: {mime}")
    return mime


def decode_image(content: bytes) -> Image.Image:
    """
    Decode image bytes to PIL Image.

    Raises:
        ValidationError: If image cannot be decoded
    """
    try:
        image = Image.open(io.BytesIO(content))
        image.load()  # Force load to catch truncated images
        return image
    except Exception as e:
        raise ValidationError(
            f"Cannot decode image: {str(e)}",
            status_code=400
        )


async def validate_image_upload(
    file,
    content_type: Optional[str],
    max_mb: int = DEFAULT_MAX_FILE_SIZE_MB
) -> ImageRef:
    """
    Complete validation pipeline for uploaded images.

    Args:
        file: UploadFile
        content_type: MIME type from request
        max_mb: Upload size limit

    Returns:
        ImageRef with the original bytes

    Raises:
        ValidationError: If any validation fails
    """
    content = await file.read()
    return validate_image_bytes(content, content_type, max_mb)


def validate_image_bytes(
    content: bytes,
    content_type: Optional[str],
    max_mb: int = DEFAULT_MAX_FILE_SIZE_MB
) -> ImageRef:
    """Synchronous version of validate_image_upload."""
    validate_file_size(content, max_mb)
    declared = validate_mime_type(content_type)
    image = decode_image(content)

    # The model receives the MIME type of the actual bytes, not the declared one
    mime = Image.MIME.get(image.format, declared)
    if mime not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"Unsupported image format: {image.format}. Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}",
            status_code=415
        )
    if mime != declared:
        logger.warning(f"Declared {declared} but content is {mime}; using {mime}")

    logger.info(f"Image validated: {image.size[0]}x{image.size[1]}, {image.mode}, {mime}")
    return ImageRef(data=content, mime_type=mime)
