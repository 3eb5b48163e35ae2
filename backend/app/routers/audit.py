"""
SiteWalk - Audit Log Router
Per-floorplan activity trail and the log_action helper every router calls
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select, func, and_, true
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.audit import AuditLog
from app.schemas.audit import (
    AuditLogResponse,
    AuditLogList,
    AuditStats
)
from app.services.auth import SYSTEM_AUTHOR, Author

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])


def _client_ip(request: Request) -> Optional[str]:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


async def log_action(
    db: AsyncSession,
    author: Optional[Author],
    action: str,
    details: str,
    request: Optional[Request] = None,
    floorplan_id: Optional[int] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None
) -> AuditLog:
    """
    Record an editing action in the same transaction as the change itself.

    Args:
        db: Database session of the request
        author: Author of the request (None for system actions)
        action: Action type from AuditAction constants
        details: Human-readable description of what happened
        request: FastAPI Request, used for the client address
        floorplan_id: Floorplan the action touched, so its activity can be listed
        resource_type: project, floorplan, layer, calibration, marker or comment
        resource_id: Id of the affected resource (marker unique_id for markers)

    Example:
        await log_action(
            db=db,
            author=author,
            action=AuditAction.MARKER_DELETE,
            details=f"Deleted camera marker {marker.id} (3 versions)",
            request=request,
            floorplan_id=floorplan_id,
            resource_type="marker",
            resource_id=marker.unique_id
        )
    """
    entry = AuditLog(
        author_id=author.id if author else None,
        author_name=author.name if author else SYSTEM_AUTHOR,
        action=action,
        details=details,
        floorplan_id=floorplan_id,
        resource_type=resource_type,
        resource_id=resource_id,
        ip_address=_client_ip(request) if request else None
    )

    db.add(entry)
    await db.flush()

    scope = f"floorplan {floorplan_id}" if floorplan_id is not None else "global"
    logger.info(f"[AUDIT] {entry.author_name} ({scope}): {action} - {details}")

    return entry


def _filters(
    floorplan_id: Optional[int] = None,
    author_id: Optional[int] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None
) -> List:
    filters = []
    if floorplan_id is not None:
        filters.append(AuditLog.floorplan_id == floorplan_id)
    if author_id is not None:
        filters.append(AuditLog.author_id == author_id)
    if action:
        filters.append(AuditLog.action == action)
    if resource_type:
        filters.append(AuditLog.resource_type == resource_type)
    if resource_id:
        filters.append(AuditLog.resource_id == resource_id)
    if since:
        filters.append(AuditLog.timestamp >= since)
    if until:
        filters.append(AuditLog.timestamp <= until)
    return filters


@router.get("", response_model=AuditLogList)
async def list_audit_logs(
    floorplan_id: Optional[int] = None,
    author_id: Optional[int] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 50,
    db: AsyncSession = Depends(get_db)
):
    """
    Activity trail, newest first.

    Pass floorplan_id for one floorplan's history, or resource_type=marker
    with a marker's unique_id to follow every version of that marker.
    """
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)

    filters = _filters(floorplan_id, author_id, action, resource_type, resource_id, since, until)
    condition = and_(*filters) if filters else true()

    total = (await db.execute(select(func.count(AuditLog.id)).where(condition))).scalar() or 0

    result = await db.execute(
        select(AuditLog)
        .where(condition)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return AuditLogList(
        items=[AuditLogResponse.model_validate(log) for log in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size
    )


@router.get("/stats", response_model=AuditStats)
async def get_audit_stats(
    days: int = 7,
    floorplan_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db)
):
    """Action counts for the last `days` days, optionally for one floorplan."""
    end_time = datetime.utcnow()
    start_time = end_time - timedelta(days=days)
    today_start = end_time.replace(hour=0, minute=0, second=0, microsecond=0)

    in_period = and_(*_filters(floorplan_id=floorplan_id, since=start_time))
    today = and_(*_filters(floorplan_id=floorplan_id, since=today_start))

    total_actions = (await db.execute(select(func.count(AuditLog.id)).where(in_period))).scalar()
    actions_today = (await db.execute(select(func.count(AuditLog.id)).where(today))).scalar()
    active_authors = (await db.execute(
        select(func.count(func.distinct(AuditLog.author_name))).where(in_period)
    )).scalar()

    by_action = await db.execute(
        select(AuditLog.action, func.count(AuditLog.id)).where(in_period).group_by(AuditLog.action)
    )
    by_resource = await db.execute(
        select(AuditLog.resource_type, func.count(AuditLog.id))
        .where(in_period, AuditLog.resource_type.is_not(None))
        .group_by(AuditLog.resource_type)
    )

    return AuditStats(
        floorplan_id=floorplan_id,
        total_actions=total_actions or 0,
        actions_today=actions_today or 0,
        active_authors=active_authors or 0,
        by_action={row[0]: row[1] for row in by_action.all()},
        by_resource_type={row[0]: row[1] for row in by_resource.all()},
        period_start=start_time,
        period_end=end_time
    )


@router.get("/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(
    log_id: int,
    db: AsyncSession = Depends(get_db)
):
    log = await db.get(AuditLog, log_id)
    if not log:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Audit log with id {log_id} not found"
        )
    return AuditLogResponse.model_validate(log)
