"""
SiteWalk - Floorplan API Client
Async HTTP client for the floorplan persistence service
"""
import base64
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from app.annotation.calibration import Calibration
from app.annotation.errors import TransportError
from app.annotation.markers import Layer, Marker
from app.config import get_settings

logger = logging.getLogger(__name__)

# Server-managed fields never sent in request bodies
READ_ONLY_FIELDS = {"created_at", "updated_at"}


class FloorplanDocument(BaseModel):
    """Floorplan as returned by GET /floorplans/{id}."""
    id: int
    project_id: int
    name: str
    page_count: int = 1
    content_type: str = "application/pdf"
    page_width: Optional[float] = None
    page_height: Optional[float] = None
    pdf_data: Optional[str] = None

    @property
    def content(self) -> bytes:
        return base64.b64decode(self.pdf_data) if self.pdf_data else b""


class MarkerCommentData(BaseModel):
    id: int
    marker_id: int
    author_id: Optional[int] = None
    author_name: Optional[str] = None
    comment: str


class FloorplanClient:
    """
    Client for the floorplan REST API.

    Every non-2xx response and every network failure is raised as a
    TransportError; callers never see raw httpx exceptions.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_id: Optional[int] = None,
        user_name: Optional[str] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout or settings.client_timeout
        self.transport = transport
        self.headers: Dict[str, str] = {}
        if user_id is not None:
            self.headers["X-User-Id"] = str(user_id)
        if user_name:
            self.headers["X-User-Name"] = user_name

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                headers=self.headers,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransportError(f"{method} {path} failed: {e}", detail=str(e))

        if response.status_code >= 400:
            detail = self._error_detail(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {detail}")
            raise TransportError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict) and "detail" in body:
            detail = body["detail"]
            return detail if isinstance(detail, str) else str(detail)
        return response.text

    @staticmethod
    def _marker_body(marker: Marker, include_id: bool = False, keep_nulls: bool = False) -> Dict[str, Any]:
        """keep_nulls sends cleared fields as null so a PATCH can unset them."""
        exclude = set(READ_ONLY_FIELDS)
        if not include_id:
            exclude.add("id")
        return marker.model_dump(mode="json", exclude=exclude, exclude_none=not keep_nulls)

    # ============================================================
    # Floorplans & layers
    # ============================================================

    async def get_floorplan(self, floorplan_id: int) -> FloorplanDocument:
        response = await self._request("GET", f"/floorplans/{floorplan_id}")
        return FloorplanDocument.model_validate(response.json())

    async def list_layers(self, floorplan_id: int) -> List[Layer]:
        response = await self._request("GET", f"/floorplans/{floorplan_id}/layers")
        return [Layer.model_validate(item) for item in response.json()]

    # ============================================================
    # Markers
    # ============================================================

    async def list_markers(
        self,
        floorplan_id: int,
        page: Optional[int] = None,
        layer_id: Optional[int] = None,
        marker_type: Optional[str] = None,
        include_history: bool = False,
    ) -> List[Marker]:
        params: Dict[str, Any] = {}
        if page is not None:
            params["page"] = page
        if layer_id is not None:
            params["layer_id"] = layer_id
        if marker_type is not None:
            params["marker_type"] = marker_type
        if include_history:
            params["include_history"] = "true"
        response = await self._request("GET", f"/floorplans/{floorplan_id}/markers", params=params)
        return [Marker.model_validate(item) for item in response.json()]

    async def create_marker(self, floorplan_id: int, marker: Marker) -> Marker:
        response = await self._request(
            "POST", f"/floorplans/{floorplan_id}/markers", json=self._marker_body(marker)
        )
        return Marker.model_validate(response.json())

    async def update_marker(self, floorplan_id: int, marker_id: int, marker: Marker) -> Marker:
        """PATCH with the full marker; the server stores it as a new version."""
        response = await self._request(
            "PATCH",
            f"/floorplans/{floorplan_id}/markers/{marker_id}",
            json=self._marker_body(marker, include_id=True, keep_nulls=True),
        )
        return Marker.model_validate(response.json())

    async def delete_marker(self, floorplan_id: int, marker_id: int) -> None:
        await self._request("DELETE", f"/floorplans/{floorplan_id}/markers/{marker_id}")

    async def duplicate_marker(self, floorplan_id: int, marker: Marker) -> Marker:
        response = await self._request(
            "POST", f"/floorplans/{floorplan_id}/markers/duplicate", json=self._marker_body(marker)
        )
        return Marker.model_validate(response.json())

    async def marker_history(self, floorplan_id: int, marker_id: int) -> List[Marker]:
        response = await self._request("GET", f"/floorplans/{floorplan_id}/markers/{marker_id}/history")
        return [Marker.model_validate(item) for item in response.json()]

    # ============================================================
    # Calibration
    # ============================================================

    async def get_calibration(self, floorplan_id: int, page: int) -> Optional[Calibration]:
        response = await self._request(
            "GET", f"/floorplans/{floorplan_id}/calibration", params={"page": page}
        )
        data = response.json()
        return Calibration.model_validate(data) if data else None

    async def save_calibration(self, floorplan_id: int, calibration: Calibration) -> Calibration:
        body = calibration.model_dump(
            mode="json",
            include={"page", "start_x", "start_y", "end_x", "end_y", "real_world_distance", "unit"},
        )
        response = await self._request("POST", f"/floorplans/{floorplan_id}/calibration", json=body)
        return Calibration.model_validate(response.json())

    # ============================================================
    # Comments
    # ============================================================

    async def list_comments(self, marker_id: int) -> List[MarkerCommentData]:
        response = await self._request("GET", f"/markers/{marker_id}/comments")
        return [MarkerCommentData.model_validate(item) for item in response.json()]

    async def add_comment(self, marker_id: int, comment: str) -> MarkerCommentData:
        response = await self._request("POST", f"/markers/{marker_id}/comments", json={"comment": comment})
        return MarkerCommentData.model_validate(response.json())
