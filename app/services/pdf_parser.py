"""PDF text extraction for uploaded policy documents."""

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

import pypdf

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

# Document-info keys passed back to the client (pypdf prefixes them with "/")
_INFO_KEYS = ("Title", "Author", "Subject")


class PDFExtractionError(Exception):
    """The upload could not be read as a PDF."""

    def __init__(self, message: str = "Failed to parse PDF. Please ensure it's a valid PDF file."):
        super().__init__(message)
        self.message = message


@dataclass
class PDFExtractionResult:
    text: str
    num_pages: int
    info: Dict[str, Optional[str]] = field(default_factory=dict)


def extract_text_from_pdf(data: bytes) -> PDFExtractionResult:
    """Extract the text of every page plus basic document metadata."""
    logger.debug(f"Parsing PDF ({len(data)} bytes)")
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        metadata = reader.metadata or {}
        info = {key: _info_value(metadata.get(f"/{key}")) for key in _INFO_KEYS}
    except Exception as e:  # pypdf raises a wide variety on malformed input
        logger.warning(f"PDF parsing failed: {type(e).__name__}: {e}")
        raise PDFExtractionError() from e

    logger.info(f"PDF parsed: {len(pages)} page(s)")
    return PDFExtractionResult(
        text="\n".join(pages),
        num_pages=len(pages),
        info={k: v for k, v in info.items() if v},
    )


def _info_value(value) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def clean_pdf_text(text: str) -> str:
    """Collapse every whitespace run (newlines included) to one space and trim."""
    return re.sub(r"\s+", " ", text).strip()
