"""
SiteWalk - Marker Comments Router
Discussion threads attached to annotations
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.audit import AuditAction
from app.models.marker import FloorplanMarker, MarkerComment
from app.routers.audit import log_action
from app.schemas.marker import CommentCreate, CommentResponse
from app.services.auth import Author, get_current_author

logger = logging.getLogger(__name__)

router = APIRouter(tags=["comments"])


async def _get_marker(db: AsyncSession, marker_id: int) -> FloorplanMarker:
    marker = await db.get(FloorplanMarker, marker_id)
    if not marker:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Marker with id {marker_id} not found"
        )
    return marker


@router.get("/markers/{marker_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    marker_id: int,
    db: AsyncSession = Depends(get_db)
):
    """
    Comments on an annotation, oldest first.

    Comments follow the annotation, not the version: any version id of the
    chain returns the same thread.
    """
    marker = await _get_marker(db, marker_id)
    chain_ids = select(FloorplanMarker.id).where(FloorplanMarker.unique_id == marker.unique_id)
    result = await db.execute(
        select(MarkerComment)
        .where(MarkerComment.marker_id.in_(chain_ids))
        .order_by(MarkerComment.created_at, MarkerComment.id)
    )
    return [CommentResponse.model_validate(c) for c in result.scalars().all()]


@router.post(
    "/markers/{marker_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_comment(
    marker_id: int,
    comment_data: CommentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    marker = await _get_marker(db, marker_id)

    comment = MarkerComment(
        marker_id=marker.id,
        author_id=author.id,
        author_name=None if author.is_system else author.name,
        comment=comment_data.comment
    )
    db.add(comment)
    await db.flush()
    await db.refresh(comment)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.COMMENT_ADD,
        details=f"Commented on marker {marker_id}",
        request=request,
        floorplan_id=marker.floorplan_id,
        resource_type="marker",
        resource_id=marker.unique_id
    )

    return CommentResponse.model_validate(comment)


@router.delete("/marker-comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    comment = await db.get(MarkerComment, comment_id)
    if not comment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Comment with id {comment_id} not found"
        )

    marker_id = comment.marker_id
    marker = await db.get(FloorplanMarker, marker_id)
    floorplan_id = marker.floorplan_id if marker else None
    await db.delete(comment)
    await db.flush()

    await log_action(
        db=db,
        author=author,
        action=AuditAction.COMMENT_DELETE,
        details=f"Deleted comment {comment_id} on marker {marker_id}",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="comment",
        resource_id=str(comment_id)
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
