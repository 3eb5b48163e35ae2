"""
SiteWalk - Markers Router
Versioned floorplan annotations

Edits never touch a stored version: PATCH inserts the next version and
clears is_latest on the one it supersedes. Only the latest version of a
chain can be edited (409 otherwise).
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.annotation.errors import ValidationError
from app.annotation.markers import (
    Marker,
    MarkerType,
    anchored,
    create_version,
    new_unique_id,
    validate_marker,
    verify_chain,
)
from app.database import get_db
from app.models.audit import AuditAction
from app.models.floorplan import Floorplan, FloorplanLayer
from app.models.marker import FloorplanMarker, MarkerComment
from app.routers.audit import log_action
from app.routers.floorplans import get_floorplan_or_404
from app.schemas.marker import (
    CommentResponse,
    MarkerCreate,
    MarkerResponse,
    MarkerUpdate,
    MarkerWithComments,
)
from app.services.auth import Author, get_current_author

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/floorplans/{floorplan_id}/markers", tags=["markers"])

# Columns written from the annotation model
STORED_FIELDS = {
    "unique_id", "floorplan_id", "page", "marker_type", "layer_id", "equipment_id",
    "position_x", "position_y", "end_x", "end_y", "width", "height", "rotation", "points",
    "color", "fill_color", "opacity", "line_width", "label", "text_content", "font_size", "font_family",
    "version", "parent_id",
}


# ============================================================
# Helpers
# ============================================================

async def get_marker_or_404(db: AsyncSession, floorplan_id: int, marker_id: int) -> FloorplanMarker:
    result = await db.execute(
        select(FloorplanMarker).where(
            FloorplanMarker.id == marker_id,
            FloorplanMarker.floorplan_id == floorplan_id
        )
    )
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Marker with id {marker_id} not found on floorplan {floorplan_id}"
        )
    return row


async def _check_layer(db: AsyncSession, floorplan_id: int, layer_id: Optional[int]) -> None:
    if layer_id is None:
        return
    layer = await db.get(FloorplanLayer, layer_id)
    if not layer or layer.floorplan_id != floorplan_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Layer {layer_id} does not belong to floorplan {floorplan_id}"
        )


def _to_row(marker: Marker, author: Author) -> FloorplanMarker:
    values = marker.model_dump(include=STORED_FIELDS)
    return FloorplanMarker(
        **values,
        is_latest=True,
        author_id=author.id,
        author_name=None if author.is_system else author.name
    )


async def _insert_new(
    db: AsyncSession,
    floorplan: Floorplan,
    data: MarkerCreate,
    author: Author,
    unique_id: str
) -> FloorplanMarker:
    """Validate and store the first version of a new annotation."""
    marker = Marker.model_validate({
        **data.model_dump(exclude={"unique_id"}),
        "floorplan_id": floorplan.id,
        "unique_id": unique_id,
        "version": 1,
        "parent_id": None,
    })
    marker = validate_marker(anchored(marker), floorplan.page_count)
    await _check_layer(db, floorplan.id, marker.layer_id)

    row = _to_row(marker, author)
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


# ============================================================
# API Endpoints
# ============================================================

@router.get("", response_model=List[MarkerResponse])
async def list_markers(
    floorplan_id: int,
    page: Optional[int] = None,
    layer_id: Optional[int] = None,
    marker_type: Optional[MarkerType] = None,
    include_history: bool = False,
    db: AsyncSession = Depends(get_db)
):
    """
    Markers of a floorplan, one row per annotation (latest version).

    - **page**: only markers on this page
    - **include_history**: also return superseded versions
    """
    await get_floorplan_or_404(db, floorplan_id)

    query = select(FloorplanMarker).where(FloorplanMarker.floorplan_id == floorplan_id)
    if page is not None:
        query = query.where(FloorplanMarker.page == page)
    if layer_id is not None:
        query = query.where(FloorplanMarker.layer_id == layer_id)
    if marker_type is not None:
        query = query.where(FloorplanMarker.marker_type == marker_type)
    if not include_history:
        query = query.where(FloorplanMarker.is_latest == True)

    result = await db.execute(query.order_by(FloorplanMarker.id))
    return [MarkerResponse.model_validate(row) for row in result.scalars().all()]


@router.post("", response_model=MarkerResponse, status_code=status.HTTP_201_CREATED)
async def create_marker(
    floorplan_id: int,
    marker_data: MarkerCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Create version 1 of a new annotation."""
    floorplan = await get_floorplan_or_404(db, floorplan_id)

    unique_id = marker_data.unique_id or new_unique_id()
    existing = await db.execute(
        select(FloorplanMarker.id).where(FloorplanMarker.unique_id == unique_id).limit(1)
    )
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Marker with unique id {unique_id} already exists; use PATCH to edit it"
        )

    row = await _insert_new(db, floorplan, marker_data, author, unique_id)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.MARKER_CREATE,
        details=f"Created {row.marker_type.value} marker {row.id} on floorplan {floorplan_id} page {row.page}",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="marker",
        resource_id=row.unique_id
    )

    return MarkerResponse.model_validate(row)


@router.post("/duplicate", response_model=MarkerResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_marker(
    floorplan_id: int,
    marker_data: MarkerCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """
    Store a copy of a marker as a brand new annotation.

    The body is the already-offset copy; the server always assigns a fresh
    unique id so the copy starts its own version chain.
    """
    floorplan = await get_floorplan_or_404(db, floorplan_id)
    row = await _insert_new(db, floorplan, marker_data, author, new_unique_id())

    await log_action(
        db=db,
        author=author,
        action=AuditAction.MARKER_DUPLICATE,
        details=f"Duplicated {row.marker_type.value} marker as {row.id} on floorplan {floorplan_id}",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="marker",
        resource_id=row.unique_id
    )

    return MarkerResponse.model_validate(row)


@router.get("/{marker_id}", response_model=MarkerWithComments)
async def get_marker(
    floorplan_id: int,
    marker_id: int,
    db: AsyncSession = Depends(get_db)
):
    """A marker version with the comments of its whole chain."""
    row = await get_marker_or_404(db, floorplan_id, marker_id)
    chain_ids = select(FloorplanMarker.id).where(FloorplanMarker.unique_id == row.unique_id)
    result = await db.execute(
        select(MarkerComment)
        .where(MarkerComment.marker_id.in_(chain_ids))
        .order_by(MarkerComment.created_at, MarkerComment.id)
    )
    comments = [CommentResponse.model_validate(c) for c in result.scalars().all()]
    return MarkerWithComments(**MarkerResponse.model_validate(row).model_dump(), comments=comments)


@router.get("/{marker_id}/history", response_model=List[MarkerResponse])
async def get_marker_history(
    floorplan_id: int,
    marker_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Every version of the marker's annotation, oldest first."""
    row = await get_marker_or_404(db, floorplan_id, marker_id)
    result = await db.execute(
        select(FloorplanMarker)
        .where(FloorplanMarker.unique_id == row.unique_id)
        .order_by(FloorplanMarker.version)
    )
    versions = [MarkerResponse.model_validate(r) for r in result.scalars().all()]

    try:
        verify_chain([Marker.model_validate(v.model_dump()) for v in versions])
    except ValidationError as e:
        logger.error(f"Corrupt version chain {row.unique_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Version chain of marker {marker_id} is inconsistent: {e}"
        )
    return versions


@router.patch("/{marker_id}", response_model=MarkerResponse)
async def update_marker(
    floorplan_id: int,
    marker_id: int,
    marker_data: MarkerUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """
    Edit a marker by storing its next version.

    The new row keeps the unique id, gets version + 1 and points its
    parent_id at `marker_id`, which stops being the latest version.
    """
    floorplan = await get_floorplan_or_404(db, floorplan_id)
    existing_row = await get_marker_or_404(db, floorplan_id, marker_id)

    if not existing_row.is_latest:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Marker {marker_id} has been superseded by a newer version"
        )

    existing = Marker.model_validate(existing_row)
    changes = {
        field: value for field, value in marker_data.model_dump(exclude_unset=True).items()
        if not (field in ("page", "marker_type") and value is None)
    }
    new_version = validate_marker(anchored(create_version(existing, changes)), floorplan.page_count)
    await _check_layer(db, floorplan_id, new_version.layer_id)

    existing_row.is_latest = False
    row = _to_row(new_version, author)
    db.add(row)
    await db.flush()
    await db.refresh(row)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.MARKER_UPDATE,
        details=f"Updated marker {marker_id} -> {row.id} (version {row.version}): {', '.join(sorted(changes)) or 'no changes'}",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="marker",
        resource_id=row.unique_id
    )

    return MarkerResponse.model_validate(row)


@router.delete("/{marker_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_marker(
    floorplan_id: int,
    marker_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Delete the marker's annotation: every version and all comments."""
    row = await get_marker_or_404(db, floorplan_id, marker_id)
    unique_id = row.unique_id
    marker_type = row.marker_type

    chain_ids = select(FloorplanMarker.id).where(FloorplanMarker.unique_id == unique_id)
    await db.execute(delete(MarkerComment).where(MarkerComment.marker_id.in_(chain_ids)))
    result = await db.execute(delete(FloorplanMarker).where(FloorplanMarker.unique_id == unique_id))
    await db.flush()

    await log_action(
        db=db,
        author=author,
        action=AuditAction.MARKER_DELETE,
        details=f"Deleted {marker_type.value} marker {marker_id} ({result.rowcount} versions)",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="marker",
        resource_id=unique_id
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
