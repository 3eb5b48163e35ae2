"""
SiteWalk - Floorplan Layers Router
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.audit import AuditAction
from app.models.floorplan import FloorplanLayer
from app.models.marker import FloorplanMarker
from app.routers.audit import log_action
from app.routers.floorplans import get_floorplan_or_404
from app.schemas.floorplan import LayerCreate, LayerResponse, LayerUpdate
from app.services.auth import Author, get_current_author

logger = logging.getLogger(__name__)

router = APIRouter(tags=["layers"])


async def _order_taken(db: AsyncSession, floorplan_id: int, order_index: int, exclude_id: int = None) -> bool:
    query = select(FloorplanLayer.id).where(
        FloorplanLayer.floorplan_id == floorplan_id,
        FloorplanLayer.order_index == order_index
    )
    if exclude_id is not None:
        query = query.where(FloorplanLayer.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


@router.get("/floorplans/{floorplan_id}/layers", response_model=List[LayerResponse])
async def list_layers(
    floorplan_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Layers of a floorplan in z-order."""
    await get_floorplan_or_404(db, floorplan_id)
    result = await db.execute(
        select(FloorplanLayer)
        .where(FloorplanLayer.floorplan_id == floorplan_id)
        .order_by(FloorplanLayer.order_index)
    )
    return [LayerResponse.model_validate(layer) for layer in result.scalars().all()]


@router.post(
    "/floorplans/{floorplan_id}/layers",
    response_model=LayerResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_layer(
    floorplan_id: int,
    layer_data: LayerCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Create a layer; without order_index it goes on top."""
    await get_floorplan_or_404(db, floorplan_id)

    order_index = layer_data.order_index
    if order_index is None:
        result = await db.execute(
            select(func.max(FloorplanLayer.order_index)).where(FloorplanLayer.floorplan_id == floorplan_id)
        )
        highest = result.scalar()
        order_index = 0 if highest is None else highest + 1
    elif await _order_taken(db, floorplan_id, order_index):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order index {order_index} is already used on floorplan {floorplan_id}"
        )

    layer = FloorplanLayer(
        floorplan_id=floorplan_id,
        name=layer_data.name,
        color=layer_data.color,
        visible=layer_data.visible,
        order_index=order_index
    )
    db.add(layer)
    await db.flush()
    await db.refresh(layer)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.LAYER_CREATE,
        details=f"Created layer '{layer.name}' on floorplan {floorplan_id}",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="layer",
        resource_id=str(layer.id)
    )

    return LayerResponse.model_validate(layer)


async def _get_layer_or_404(db: AsyncSession, layer_id: int) -> FloorplanLayer:
    layer = await db.get(FloorplanLayer, layer_id)
    if not layer:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Layer with id {layer_id} not found"
        )
    return layer


@router.patch("/floorplan-layers/{layer_id}", response_model=LayerResponse)
async def update_layer(
    layer_id: int,
    layer_data: LayerUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Rename, recolor, show/hide or reorder a layer."""
    layer = await _get_layer_or_404(db, layer_id)
    changes = layer_data.model_dump(exclude_unset=True, exclude_none=True)

    if "order_index" in changes and await _order_taken(db, layer.floorplan_id, changes["order_index"], layer.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order index {changes['order_index']} is already used on floorplan {layer.floorplan_id}"
        )

    for field, value in changes.items():
        setattr(layer, field, value)

    await db.flush()
    await db.refresh(layer)

    await log_action(
        db=db,
        author=author,
        action=AuditAction.LAYER_UPDATE,
        details=f"Updated layer {layer_id}: {', '.join(changes) or 'no changes'}",
        request=request,
        floorplan_id=layer.floorplan_id,
        resource_type="layer",
        resource_id=str(layer_id)
    )

    return LayerResponse.model_validate(layer)


@router.delete("/floorplan-layers/{layer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_layer(
    layer_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    author: Author = Depends(get_current_author)
):
    """Delete a layer. Its markers stay on the floorplan without a layer."""
    layer = await _get_layer_or_404(db, layer_id)

    result = await db.execute(
        update(FloorplanMarker)
        .where(FloorplanMarker.layer_id == layer_id)
        .values(layer_id=None)
    )
    detached = result.rowcount

    name, floorplan_id = layer.name, layer.floorplan_id
    await db.delete(layer)
    await db.flush()

    await log_action(
        db=db,
        author=author,
        action=AuditAction.LAYER_DELETE,
        details=f"Deleted layer '{name}' (ID: {layer_id}), detached {detached} markers",
        request=request,
        floorplan_id=floorplan_id,
        resource_type="layer",
        resource_id=str(layer_id)
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
