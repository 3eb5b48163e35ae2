"""
SiteWalk - Floorplans Router
Floorplan upload, retrieval and deletion
"""
import base64
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Request, Response, status
from fastapi.responses import FileResponse
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.models.audit import AuditAction
from app.models.floorplan import Floorplan, FloorplanLayer, FloorplanCalibration
from app.models.marker import FloorplanMarker, MarkerComment
from app.models.project import Project
from app.routers.audit import log_action
from app.schemas.floorplan import FloorplanDetail, FloorplanResponse, FloorplanUpdate
from app.services.auth import Author, get_current_author
from app.services.document_inspector import DocumentError, inspect_document
from app.services.floorplan_storage import (
    delete_floorplan_file,
    read_floorplan_file,
    resolve_path,
    save_floorplan_file,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(tags=["floorplans"])


async def get_floorplan_or_404(db: AsyncSession, floorplan_id: int) -> Floorplan:
    result = await db.execute(select(Floorplan).where(Floorplan.id == floorplan_id))
    floorplan = result.scalar_one_or_none()
    if not floorplan:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Floorplan with id {floorplan_id} not found"
        )
    return floorplan


async def purge_floorplan(db: AsyncSession, floorplan: Floorplan) -> None:
    """
    Delete a floorplan with its layers, calibrations, markers and comments.

    Rows are removed explicitly so the result does not depend on the
    database enforcing ON DELETE CASCADE.
    """
    marker_ids = select(FloorplanMarker.id).where(FloorplanMarker.floorplan_id == floorplan.id)
    await db.execute(delete(MarkerComment).where(MarkerComment.marker_id.in_(marker_ids)))
    await db.execute(delete(FloorplanMarker).where(FloorplanMarker.floorplan_id == floorplan.id))
    await db.execute(delete(FloorplanCalibration).where(FloorplanCalibration.floorplan_id == floorplan.id))
    await db.execute(delete(FloorplanLayer).where(FloorplanLayer.floorplan_id == floorplan.id))
    await db.delete(floorplan)
    await db.flush()
    delete_floorplan_file(floorplan.file_path)


@router.get("/projects/{project_id}/floorplans", response_model=List[FloorplanResponse])
async def list_floorplans(
    project_id: int,
    db: AsyncSession = Depends(get_db)
):
    """List a project's floorplans (metadata only)."""
    result = await db.execute(
        select(Floorplan).where(Floorplan.project_id == project_id).order_by(Floorplan.created_at, Floorplan.id)
    )
    return [FloorplanResponse.model_validate(f) for f in result.scalars().all()]


@router.post(
    "/projects/{project_id}/floorplans",
    response_model=FloorplanResponse,
    status_code=status.HTTP_201_CREATED
)
async def upload_floorplan(
    project_id: int,
    request: Request,
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """
    Upload a floorplan (PDF or image) to a project.

    - **file**: PDF, PNG, JPEG, GIF, WebP, BMP or TIFF
    - **name**: Display name (defaults to the file name)

    A "Default" layer is created with the floorplan.
    """
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project with id {project_id} not found"
        )

    content = await file.read()
    max_bytes = settings.max_upload_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size: {settings.max_upload_mb}MB"
        )

    try:
        info = inspect_document(content, file.content_type)
    except DocumentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    display_name = (name or file.filename or "Floorplan").strip()[:255] or "Floorplan"
    file_name = await save_floorplan_file(content, display_name, info.content_type)

    floorplan = Floorplan(
        project_id=project_id,
        name=display_name,
        file_path=file_name,
        content_type=info.content_type,
        file_size=len(content),
        page_count=info.page_count,
        page_width=info.page_width,
        page_height=info.page_height
    )
    db.add(floorplan)
    await db.flush()

    db.add(FloorplanLayer(
        floorplan_id=floorplan.id,
        name=settings.default_layer_name,
        color=settings.default_layer_color,
        visible=True,
        order_index=0
    ))
    await db.flush()
    await db.refresh(floorplan)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.FLOORPLAN_UPLOAD,
        details=f"Uploaded floorplan '{floorplan.name}' ({floorplan.page_count} pages) to project {project_id}",
        request=request,
        floorplan_id=floorplan.id,
        resource_type="floorplan",
        resource_id=str(floorplan.id)
    )

    return FloorplanResponse.model_validate(floorplan)


@router.get("/floorplans/{floorplan_id}", response_model=FloorplanDetail)
async def get_floorplan(
    floorplan_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Floorplan with its content as base64 `pdf_data`."""
    floorplan = await get_floorplan_or_404(db, floorplan_id)
    try:
        content = await read_floorplan_file(floorplan.file_path)
    except FileNotFoundError:
        logger.error(f"Stored file for floorplan {floorplan_id} is missing: {floorplan.file_path}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Content of floorplan {floorplan_id} is missing"
        )

    data = FloorplanResponse.model_validate(floorplan).model_dump()
    return FloorplanDetail(**data, pdf_data=base64.b64encode(content).decode("ascii"))


@router.get("/floorplans/{floorplan_id}/content")
async def get_floorplan_content(
    floorplan_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Raw floorplan file."""
    floorplan = await get_floorplan_or_404(db, floorplan_id)
    path = resolve_path(floorplan.file_path)
    if not path.exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Content of floorplan {floorplan_id} is missing"
        )
    return FileResponse(path, media_type=floorplan.content_type)


@router.patch("/floorplans/{floorplan_id}", response_model=FloorplanResponse)
async def update_floorplan(
    floorplan_id: int,
    update: FloorplanUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Rename a floorplan. Content is immutable."""
    floorplan = await get_floorplan_or_404(db, floorplan_id)

    old_name = floorplan.name
    if update.name is not None:
        floorplan.name = update.name

    await db.flush()
    await db.refresh(floorplan)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.FLOORPLAN_UPDATE,
        details=f"Renamed floorplan {floorplan_id} from '{old_name}' to '{floorplan.name}'",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="floorplan",
        resource_id=str(floorplan_id)
    )

    return FloorplanResponse.model_validate(floorplan)


@router.delete("/floorplans/{floorplan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_floorplan(
    floorplan_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Delete a floorplan and everything placed on it."""
    floorplan = await get_floorplan_or_404(db, floorplan_id)
    name = floorplan.name

    await purge_floorplan(db, floorplan)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.FLOORPLAN_DELETE,
        details=f"Deleted floorplan '{name}' (ID: {floorplan_id})",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="floorplan",
        resource_id=str(floorplan_id)
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
