"""
SiteWalk - Calibration Router
One reference measurement per floorplan page
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.annotation.calibration import Calibration, with_derived_fields
from app.annotation.errors import PageOutOfRangeError
from app.database import get_db
from app.models.audit import AuditAction
from app.models.floorplan import FloorplanCalibration
from app.routers.audit import log_action
from app.routers.floorplans import get_floorplan_or_404
from app.schemas.floorplan import CalibrationCreate, CalibrationResponse
from app.services.auth import Author, get_current_author

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/floorplans/{floorplan_id}/calibration", tags=["calibration"])


@router.get("", response_model=Optional[CalibrationResponse])
async def get_calibration(
    floorplan_id: int,
    page: int = 1,
    db: AsyncSession = Depends(get_db)
):
    """Calibration for a page, or null when the page is not calibrated."""
    await get_floorplan_or_404(db, floorplan_id)
    result = await db.execute(
        select(FloorplanCalibration).where(
            FloorplanCalibration.floorplan_id == floorplan_id,
            FloorplanCalibration.page == page
        )
    )
    calibration = result.scalar_one_or_none()
    return CalibrationResponse.model_validate(calibration) if calibration else None


@router.post("", response_model=CalibrationResponse)
async def save_calibration(
    floorplan_id: int,
    calibration_data: CalibrationCreate,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """
    Create or replace the calibration of a page.

    Returns 201 when the page had no calibration, 200 when it was replaced.
    """
    floorplan = await get_floorplan_or_404(db, floorplan_id)
    if calibration_data.page > floorplan.page_count:
        raise PageOutOfRangeError(f"Page {calibration_data.page} is outside 1..{floorplan.page_count}")

    # Raises InvalidCalibrationError (422) for degenerate input
    derived = with_derived_fields(Calibration(floorplan_id=floorplan_id, **calibration_data.model_dump()))

    result = await db.execute(
        select(FloorplanCalibration).where(
            FloorplanCalibration.floorplan_id == floorplan_id,
            FloorplanCalibration.page == calibration_data.page
        )
    )
    calibration = result.scalar_one_or_none()

    values = derived.model_dump(exclude={"id", "floorplan_id"})
    if calibration:
        for field, value in values.items():
            setattr(calibration, field, value)
        response.status_code = status.HTTP_200_OK
    else:
        calibration = FloorplanCalibration(floorplan_id=floorplan_id, **values)
        db.add(calibration)
        response.status_code = status.HTTP_201_CREATED

    await db.flush()
    await db.refresh(calibration)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.CALIBRATION_SET,
        details=(
            f"Calibrated floorplan {floorplan_id} page {calibration.page}: "
            f"{calibration.real_world_distance} {calibration.unit.value} = "
            f"{calibration.pdf_distance:.2f} pt"
        ),
        request=request,
        floorplan_id=floorplan_id,
        resource_type="floorplan",
        resource_id=str(floorplan_id)
    )

    return CalibrationResponse.model_validate(calibration)
