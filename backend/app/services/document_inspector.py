"""
SiteWalk - Document Inspector
Reads page count and native page size from uploaded floorplan files
"""
import logging
from io import BytesIO
from typing import Optional

import pdfplumber
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
IMAGE_CONTENT_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp", "image/bmp", "image/tiff"}

# Raster images are treated as a single page at 72 dpi (1 px = 1 PDF point)
IMAGE_POINTS_PER_PIXEL = 1.0


class DocumentError(Exception):
    """Uploaded file is not a readable PDF or image."""
    pass


class DocumentInfo(BaseModel):
    content_type: str
    page_count: int
    page_width: float
    page_height: float


def sniff_content_type(content: bytes, declared: Optional[str] = None) -> str:
    """Trust the file signature over the declared type."""
    if content.startswith(b"%PDF"):
        return PDF_CONTENT_TYPE
    if declared and declared in IMAGE_CONTENT_TYPES:
        return declared
    try:
        with Image.open(BytesIO(content)) as image:
            fmt = (image.format or "").lower()
    except (UnidentifiedImageError, OSError):
        raise DocumentError("File is neither a PDF nor a supported image")
    return f"image/{'jpeg' if fmt == 'jpg' else fmt}"


def inspect_pdf(content: bytes) -> DocumentInfo:
    try:
        with pdfplumber.open(BytesIO(content)) as pdf:
            if not pdf.pages:
                raise DocumentError("PDF has no pages")
            first = pdf.pages[0]
            info = DocumentInfo(
                content_type=PDF_CONTENT_TYPE,
                page_count=len(pdf.pages),
                page_width=float(first.width),
                page_height=float(first.height),
            )
    except DocumentError:
        raise
    except Exception as e:
        # pdfminer raises a variety of parser errors for damaged files
        raise DocumentError(f"Could not read PDF: {e}")
    logger.info(f"PDF inspected: {info.page_count} pages, {info.page_width}x{info.page_height} pt")
    return info


def inspect_image(content: bytes, content_type: str) -> DocumentInfo:
    try:
        with Image.open(BytesIO(content)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError) as e:
        raise DocumentError(f"Could not read image: {e}")
    return DocumentInfo(
        content_type=content_type,
        page_count=1,
        page_width=width * IMAGE_POINTS_PER_PIXEL,
        page_height=height * IMAGE_POINTS_PER_PIXEL,
    )


def inspect_document(content: bytes, declared_type: Optional[str] = None) -> DocumentInfo:
    """
    Inspect an uploaded floorplan.

    Raises:
        DocumentError: empty, unreadable or unsupported file
    """
    if not content:
        raise DocumentError("Uploaded file is empty")
    content_type = sniff_content_type(content, declared_type)
    if content_type == PDF_CONTENT_TYPE:
        return inspect_pdf(content)
    return inspect_image(content, content_type)
