"""Image attachment encoding.

Ollama takes images as bare base64 strings (no ``data:`` prefix).
"""

import base64
import binascii

MAX_IMAGE_SIZE = 20 * 1024 * 1024  # 20MB

# Leading bytes of the formats the vision models accept
_IMAGE_SIGNATURES = {
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"\xff\xd8\xff": "image/jpeg",
    b"GIF87a": "image/gif",
    b"GIF89a": "image/gif",
    b"RIFF": "image/webp",
}


class ImageValidationError(Exception):
    """Raised when an uploaded file is not a usable image."""

    pass


def sniff_image_type(content: bytes) -> str | None:
    """Return the MIME type for known image signatures, else None."""
    for signature, mime in _IMAGE_SIGNATURES.items():
        if content.startswith(signature):
            if mime == "image/webp" and content[8:12] != b"WEBP":
                continue
            return mime
    return None


def encode_image(content: bytes) -> str:
    """Validate raw image bytes and encode them for a generate request.

    Raises:
        ImageValidationError: If the content is empty, too large, or not an image.
    """
    if not content:
        raise ImageValidationError("Empty image provided")
    if len(content) > MAX_IMAGE_SIZE:
        raise ImageValidationError("Image exceeds maximum allowed size (20MB)")
    if sniff_image_type(content) is None:
        raise ImageValidationError("Please upload an image file (jpg, png, gif, webp)")
    return base64.b64encode(content).decode("ascii")


def decode_image(encoded: str) -> bytes:
    """Reverse of encode_image, for rendering stored attachments."""
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageValidationError(f"Attachment is not valid base64: {e}") from e


def to_data_url(encoded: str) -> str:
    """Data URL for displaying a stored attachment with its real MIME type."""
    mime = sniff_image_type(decode_image(encoded)) or "application/octet-stream"
    return f"data:{mime};base64,{encoded}"
