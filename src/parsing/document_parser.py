"""Document parsing using pypdf.

Extracts text content and metadata from uploaded documents so they can be
included in a prompt. PDF and plain-text files are supported.
"""

import io
import logging
from pathlib import PurePath

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from src.models.schemas import DocumentContent

logger = logging.getLogger(__name__)

# Constants
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
PDF_MAGIC_BYTES = b"%PDF"
TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".csv", ".json"}


class DocumentParseError(Exception):
    """Raised when document parsing fails."""

    pass


def _validate_size(file_content: bytes) -> None:
    if not file_content:
        raise DocumentParseError("Empty file provided")

    if len(file_content) > MAX_FILE_SIZE:
        size_mb = len(file_content) / (1024 * 1024)
        raise DocumentParseError(f"File size ({size_mb:.1f}MB) exceeds maximum allowed (10MB)")


def _extract_metadata(reader: PdfReader) -> dict[str, str]:
    """Extract standard metadata fields from a PDF reader."""
    metadata: dict[str, str | None] = {}

    try:
        if reader.metadata:
            metadata["title"] = reader.metadata.get("/Title")
            metadata["author"] = reader.metadata.get("/Author")
            metadata["subject"] = reader.metadata.get("/Subject")
    except Exception as e:
        logger.warning(f"Failed to extract some metadata: {e}")

    return {k: str(v) for k, v in metadata.items() if v is not None}


def parse_pdf(name: str, file_content: bytes) -> DocumentContent:
    """Parse a PDF file and extract its text content.

    Args:
        name: Original filename.
        file_content: Raw bytes of the PDF file.

    Returns:
        DocumentContent with extracted text, page count, and metadata.

    Raises:
        DocumentParseError: If the file is invalid, too large, empty, or corrupt.
    """
    _validate_size(file_content)

    if not file_content.lstrip()[:10].startswith(PDF_MAGIC_BYTES):
        raise DocumentParseError("Invalid PDF: file does not start with PDF header")

    try:
        reader = PdfReader(io.BytesIO(file_content))
        pages = len(reader.pages)
    except PdfReadError as e:
        raise DocumentParseError(f"Corrupt or invalid PDF: {e}") from e
    except Exception as e:
        raise DocumentParseError(f"Failed to read PDF: {e}") from e

    if pages == 0:
        raise DocumentParseError("PDF contains no pages")

    text_parts: list[str] = []
    for i, page in enumerate(reader.pages):
        try:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)
        except Exception as e:
            logger.warning(f"Failed to extract text from page {i + 1} of {name}: {e}")
            continue

    text = "\n\n".join(text_parts)
    if not text.strip():
        logger.warning(f"{name} contains no extractable text (may be scanned/image-based)")

    return DocumentContent(name=name, text=text, pages=pages, metadata=_extract_metadata(reader))


def parse_text(name: str, file_content: bytes) -> DocumentContent:
    """Decode a plain-text document as UTF-8."""
    _validate_size(file_content)
    try:
        text = file_content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DocumentParseError(f"{name} is not valid UTF-8 text") from e
    return DocumentContent(name=name, text=text, pages=1)


def parse_document(name: str, file_content: bytes) -> DocumentContent:
    """Dispatch on the file extension.

    Raises:
        DocumentParseError: For unsupported types or unreadable content.
    """
    suffix = PurePath(name).suffix.lower()
    if suffix == ".pdf":
        return parse_pdf(name, file_content)
    if suffix in TEXT_EXTENSIONS:
        return parse_text(name, file_content)
    raise DocumentParseError(f"Unsupported document type: {suffix or name}")
