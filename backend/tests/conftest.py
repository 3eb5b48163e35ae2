"""Pytest configuration and shared fixtures."""

import asyncio
import os
import tempfile
from io import BytesIO

import pytest

# Point the app at a throwaway database and storage BEFORE importing it
_TEST_ROOT = tempfile.mkdtemp(prefix="sitewalk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/test.db"
os.environ["STORAGE_PATH"] = os.path.join(_TEST_ROOT, "storage")

import httpx
from fastapi.testclient import TestClient
from PIL import Image

from app.annotation.markers import Layer
from app.annotation.viewport import RenderedPage, ViewportController
from app.database import init_db
from app.main import app
from app.services.floorplan_client import FloorplanClient


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Create the schema once; ASGITransport does not run the lifespan."""
    asyncio.run(init_db())


@pytest.fixture
def test_client() -> TestClient:
    """FastAPI test client with the application lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
async def async_client():
    """httpx client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test/api") as client:
        yield client


@pytest.fixture
def floorplan_client() -> FloorplanClient:
    """API client wired to the in-process app."""
    return FloorplanClient(
        base_url="http://test/api",
        transport=httpx.ASGITransport(app=app),
        user_id=7,
        user_name="Site Surveyor",
    )


def make_pdf(pages: int = 1, size=(612, 792)) -> bytes:
    """A blank PDF; Pillow writes 1 px as 1 pt at its default 72 dpi."""
    images = [Image.new("RGB", size, "white") for _ in range(pages)]
    buffer = BytesIO()
    images[0].save(buffer, format="PDF", save_all=True, append_images=images[1:])
    return buffer.getvalue()


def make_png(size=(400, 300)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_pdf() -> bytes:
    return make_pdf(pages=3)


@pytest.fixture
def sample_png() -> bytes:
    return make_png()


@pytest.fixture
def floorplan(test_client, sample_pdf) -> dict:
    """A project with an uploaded 3-page floorplan."""
    response = test_client.post("/api/projects", json={"name": "Warehouse walk"})
    assert response.status_code == 201
    project = response.json()

    response = test_client.post(
        f"/api/projects/{project['id']}/floorplans",
        files={"file": ("level-1.pdf", sample_pdf, "application/pdf")},
        data={"name": "Level 1"},
        headers={"X-User-Id": "7", "X-User-Name": "Site Surveyor"},
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def viewport() -> ViewportController:
    return ViewportController(page_count=3)


@pytest.fixture
def layers():
    return [
        Layer(id=1, name="Default", color="#3B82F6", visible=True, order_index=0),
        Layer(id=2, name="Cameras", color="#10B981", visible=True, order_index=1),
    ]


class FakeRenderer:
    """Page renderer whose results are released by the test."""

    def __init__(self):
        self.calls = []
        self.gates = {}

    async def render_page(self, page: int, render_scale: float) -> RenderedPage:
        self.calls.append((page, render_scale))
        gate = self.gates.get(page)
        if gate is not None:
            await gate.wait()
        return RenderedPage(page=page, width=100, height=100, data=b"png")


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()
