"""
SiteWalk - Page Renderer
Rasterizes floorplan pages to PNG off the event loop
"""
import asyncio
import logging
from io import BytesIO

import pypdfium2 as pdfium
from PIL import Image, UnidentifiedImageError

from app.annotation.errors import RenderError
from app.annotation.viewport import RenderedPage
from app.services.document_inspector import PDF_CONTENT_TYPE

logger = logging.getLogger(__name__)


def _encode_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FloorplanPageRenderer:
    """
    Renders pages of one floorplan file.

    PDFs go through pypdfium2; raster images are resized with Pillow.
    Decoding runs in a worker thread so the session's loop stays responsive.
    """

    def __init__(self, content: bytes, content_type: str = PDF_CONTENT_TYPE):
        self.content = content
        self.content_type = content_type

    async def render_page(self, page: int, render_scale: float) -> RenderedPage:
        if render_scale <= 0:
            raise RenderError(f"Render scale must be positive, got {render_scale}")
        if self.content_type == PDF_CONTENT_TYPE:
            return await asyncio.to_thread(self._render_pdf_page, page, render_scale)
        return await asyncio.to_thread(self._render_image, page, render_scale)

    def _render_pdf_page(self, page: int, render_scale: float) -> RenderedPage:
        try:
            pdf = pdfium.PdfDocument(self.content)
        except pdfium.PdfiumError as e:
            raise RenderError(f"Could not open PDF: {e}")
        try:
            if not 1 <= page <= len(pdf):
                raise RenderError(f"Page {page} is outside 1..{len(pdf)}")
            pdf_page = pdf[page - 1]
            image = pdf_page.render(scale=render_scale).to_pil()
            data = _encode_png(image)
        except pdfium.PdfiumError as e:
            raise RenderError(f"Could not render page {page}: {e}")
        finally:
            pdf.close()
        logger.debug(f"Rendered PDF page {page} at {render_scale:.3f}x: {image.width}x{image.height}")
        return RenderedPage(page=page, width=image.width, height=image.height, data=data)

    def _render_image(self, page: int, render_scale: float) -> RenderedPage:
        if page != 1:
            raise RenderError(f"Image floorplans have a single page, got page {page}")
        try:
            with Image.open(BytesIO(self.content)) as source:
                width = max(1, round(source.width * render_scale))
                height = max(1, round(source.height * render_scale))
                image = source.convert("RGBA").resize((width, height))
        except (UnidentifiedImageError, OSError) as e:
            raise RenderError(f"Could not decode image: {e}")
        return RenderedPage(page=page, width=width, height=height, data=_encode_png(image))


def renderer_for_floorplan(floorplan) -> FloorplanPageRenderer:
    """Build a renderer from a FloorplanDocument."""
    return FloorplanPageRenderer(floorplan.content, floorplan.content_type)
