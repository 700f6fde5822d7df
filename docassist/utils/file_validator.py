"""File validation and text extraction utilities."""

import fitz
from fastapi import HTTPException, UploadFile, status

from docassist.settings import settings

ALLOWED_CONTENT_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"


async def validate_pdf(file: UploadFile) -> None:
    """
    Checks the declared content type and the `%PDF-` signature, then
    rewinds the upload so it can be read in full.

    Raises:
        HTTPException: 400 if either check fails.
    """
    if file.content_type != ALLOWED_CONTENT_TYPE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type. Only {ALLOWED_CONTENT_TYPE} is accepted.",
        )

    magic_bytes = await file.read(len(PDF_MAGIC))
    await file.seek(0)

    if magic_bytes != PDF_MAGIC:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file content. File does not appear to be a valid PDF.",
        )


async def read_limited(file: UploadFile, limit: int = settings.MAX_FILE_SIZE) -> bytes:
    """Read the upload in chunks, rejecting it as soon as it exceeds `limit` bytes."""
    data = bytearray()
    while chunk := await file.read(4096):
        data.extend(chunk)
        if len(data) > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File size exceeds the {limit // (1024 * 1024)}MB limit.",
            )
    return bytes(data)


def extract_pdf_text(data: bytes) -> str:
    """
    Extract the text of every page, joined with newlines.

    Raises:
        HTTPException: If PyMuPDF cannot parse the file.
    """
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            return "\n".join(page.get_text() for page in doc)
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The PDF could not be parsed.",
        ) from e
