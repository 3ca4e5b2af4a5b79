"""Image upload decoding and verification.

Uploads arrive base64-encoded inside JSON bodies. Before anything reaches the
blob store the payload is decoded, size-checked and opened with Pillow to
make sure the bytes really are an image of the claimed type.
"""

import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

from plaza.config import Config
from plaza.exceptions import ValidationError
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

# Pillow format name -> MIME types a client may claim for it
PIL_FORMAT_MIME_TYPES: dict[str, set[str]] = {
    "PNG": {"image/png"},
    "JPEG": {"image/jpeg", "image/jpg"},
    "GIF": {"image/gif"},
    "WEBP": {"image/webp"},
}


def detect_image_format(data: bytes) -> str | None:
    """Return Pillow's format name for ``data``, or None if it is not an image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            return img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.debug("Image detection failed", extra={"error": str(e)})
        return None


def decode_image(data: str, mime_type: str, field: str = "image") -> bytes:
    """Decode a base64 image upload and verify it.

    Raises:
        ValidationError: Disallowed type, bad encoding, too large, or content
            that does not match ``mime_type``
    """
    if mime_type not in Config.ALLOWED_IMAGE_TYPES:
        allowed = ", ".join(sorted(Config.ALLOWED_IMAGE_TYPES))
        raise ValidationError(
            f"Image type '{mime_type}' not allowed. Allowed: {allowed}", {"field": field}
        )

    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("Invalid image encoding", extra={"field": field, "error": str(e)})
        raise ValidationError("Invalid image data encoding", {"field": field}) from e

    if not decoded:
        raise ValidationError("Image data is empty", {"field": field})

    if len(decoded) > Config.MAX_FILE_SIZE:
        max_mb = Config.MAX_FILE_SIZE / (1024 * 1024)
        logger.warning(
            "Image too large",
            extra={"field": field, "size": len(decoded), "max_size": Config.MAX_FILE_SIZE},
        )
        raise ValidationError(f"Image exceeds {max_mb:.0f}MB limit", {"field": field})

    detected = detect_image_format(decoded)
    if detected is None or mime_type not in PIL_FORMAT_MIME_TYPES.get(detected, set()):
        logger.warning(
            "Image content does not match claimed type",
            extra={"field": field, "claimed_type": mime_type, "detected_format": detected},
        )
        raise ValidationError(
            f"Image content does not match claimed type '{mime_type}'", {"field": field}
        )

    return decoded
