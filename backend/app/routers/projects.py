"""
SiteWalk - Projects Router
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.audit import AuditAction
from app.models.floorplan import Floorplan
from app.models.project import Project
from app.routers.audit import log_action
from app.routers.floorplans import purge_floorplan
from app.schemas.project import ProjectCreate, ProjectResponse
from app.services.auth import Author, get_current_author

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


async def _floorplan_count(db: AsyncSession, project_id: int) -> int:
    result = await db.execute(
        select(func.count(Floorplan.id)).where(Floorplan.project_id == project_id)
    )
    return result.scalar() or 0


def _to_response(project: Project, floorplan_count: int) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        site_address=project.site_address,
        description=project.description,
        floorplan_count=floorplan_count,
        created_at=project.created_at,
        updated_at=project.updated_at
    )


@router.get("", response_model=List[ProjectResponse])
async def list_projects(db: AsyncSession = Depends(get_db)):
    """List all projects, newest first."""
    counts = (
        select(Floorplan.project_id, func.count(Floorplan.id).label("floorplan_count"))
        .group_by(Floorplan.project_id)
        .subquery()
    )
    result = await db.execute(
        select(Project, func.coalesce(counts.c.floorplan_count, 0))
        .outerjoin(counts, counts.c.project_id == Project.id)
        .order_by(Project.created_at.desc(), Project.id.desc())
    )
    return [_to_response(project, count) for project, count in result.all()]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Create a project (site walk)."""
    project = Project(**project_data.model_dump())
    db.add(project)
    await db.flush()
    await db.refresh(project)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.PROJECT_CREATE,
        details=f"Created project '{project.name}'",
        request=request,
        resource_type="project",
        resource_id=str(project.id)
    )

    return _to_response(project, 0)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    db: AsyncSession = Depends(get_db)
):
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project with id {project_id} not found"
        )
    return _to_response(project, await _floorplan_count(db, project_id))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Delete a project with all of its floorplans."""
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project with id {project_id} not found"
        )

    result = await db.execute(select(Floorplan).where(Floorplan.project_id == project_id))
    floorplans = result.scalars().all()
    for floorplan in floorplans:
        await purge_floorplan(db, floorplan)

    name = project.name
    await db.delete(project)
    await db.flush()

    await log_action(
        db=db,
        author=author,
        action=AuditAction.PROJECT_DELETE,
        details=f"Deleted project '{name}' (ID: {project_id}) with {len(floorplans)} floorplans",
        request=request,
        resource_type="project",
        resource_id=str(project_id)
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
