"""Upload handling for chat attachments.

Responsibilities:
    - PDF and plain-text extraction with pypdf for document context
    - Image validation and base64 encoding for vision models
"""

from src.parsing.document_parser import DocumentParseError, parse_document
from src.parsing.images import ImageValidationError, decode_image, encode_image, to_data_url

__all__ = [
    "DocumentParseError",
    "ImageValidationError",
    "decode_image",
    "encode_image",
    "parse_document",
    "to_data_url",
]
