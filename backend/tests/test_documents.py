"""Tests for floorplan inspection, storage and page rendering."""
from io import BytesIO

import pytest
from PIL import Image

from app.annotation.errors import RenderError
from app.services.document_inspector import DocumentError, inspect_document, sniff_content_type
from app.services.floorplan_storage import (
    delete_floorplan_file,
    read_floorplan_file,
    resolve_path,
    save_floorplan_file,
)
from app.services.page_renderer import FloorplanPageRenderer


def test_inspect_pdf(sample_pdf):
    info = inspect_document(sample_pdf, "application/octet-stream")
    assert info.content_type == "application/pdf"
    assert info.page_count == 3
    assert (info.page_width, info.page_height) == pytest.approx((612, 792))


def test_inspect_png(sample_png):
    info = inspect_document(sample_png)
    assert info.content_type == "image/png"
    assert info.page_count == 1
    assert (info.page_width, info.page_height) == (400, 300)


@pytest.mark.parametrize("content", [b"", b"plain text"])
def test_unreadable_documents(content):
    with pytest.raises(DocumentError):
        inspect_document(content)


def test_signature_beats_declared_type(sample_pdf):
    assert sniff_content_type(sample_pdf, "image/png") == "application/pdf"


async def test_storage_round_trip(sample_png):
    name = await save_floorplan_file(sample_png, "Level 1 / East", "image/png")
    assert "/" not in name
    assert name.endswith(".png")
    assert await read_floorplan_file(name) == sample_png

    assert delete_floorplan_file(name)
    assert not resolve_path(name).exists()
    assert not delete_floorplan_file(name)


async def test_render_pdf_page(sample_pdf):
    renderer = FloorplanPageRenderer(sample_pdf, "application/pdf")
    page = await renderer.render_page(2, 0.5)
    assert page.page == 2
    assert (page.width, page.height) == (306, 396)
    assert Image.open(BytesIO(page.data)).format == "PNG"


async def test_render_image_scales(sample_png):
    renderer = FloorplanPageRenderer(sample_png, "image/png")
    page = await renderer.render_page(1, 2.0)
    assert (page.width, page.height) == (800, 600)


async def test_render_errors(sample_pdf, sample_png):
    with pytest.raises(RenderError):
        await FloorplanPageRenderer(sample_pdf, "application/pdf").render_page(4, 1.0)
    with pytest.raises(RenderError):
        await FloorplanPageRenderer(sample_png, "image/png").render_page(2, 1.0)
    with pytest.raises(RenderError):
        await FloorplanPageRenderer(b"garbage", "application/pdf").render_page(1, 1.0)
