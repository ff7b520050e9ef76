"""PDF upload and text extraction route.

The file is held in memory only; neither the PDF nor its text is stored.
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile, status
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.middleware.rate_limit import rate_limit
from app.schemas import PDFUploadResponse
from app.services.pdf_parser import (
    PDF_MIME_TYPE,
    PDFExtractionError,
    clean_pdf_text,
    extract_text_from_pdf,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])


@router.post("/pdf", response_model=PDFUploadResponse)
async def upload_pdf(request: Request, pdf: Optional[UploadFile] = File(None)):
    """Extract and clean the text of an uploaded policy PDF."""
    rate_limit(request, "upload_pdf")
    if pdf is None or not pdf.filename:
        raise HTTPException(status_code=400, detail="No PDF file uploaded")
    if pdf.content_type != PDF_MIME_TYPE:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Only PDF files are allowed",
        )

    max_bytes = get_settings().max_upload_mb * 1024 * 1024
    data = await pdf.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"PDF exceeds the {get_settings().max_upload_mb}MB upload limit",
        )

    try:
        result = await run_in_threadpool(extract_text_from_pdf, data)
    except PDFExtractionError as e:
        raise HTTPException(status_code=500, detail=e.message)

    return PDFUploadResponse(
        text=clean_pdf_text(result.text),
        num_pages=result.num_pages,
        file_name=pdf.filename,
        info=result.info,
    )
