"""
Forest Layers Router - CRUD operations for forest overlays
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from auth import get_current_user
from database import get_session
from errors import NotFoundError, OwnershipError
from models.forest_layer import ForestLayer
from models.user import User
from schemas.common import success
from schemas.forest_layer import ForestLayerCreate, ForestLayerResponse, ForestLayerUpdate

logger = structlog.get_logger()

router = APIRouter()


async def _get_owned_layer(session: AsyncSession, user_id: int, layer_id: int) -> ForestLayer:
    layer = await session.get(ForestLayer, layer_id)

    if layer is None:
        raise NotFoundError("Forest layer", layer_id)
    if layer.user_id != user_id:
        logger.warning("Forest layer access denied", layer_id=layer_id, user_id=user_id)
        raise OwnershipError("Forest layer", layer_id)

    return layer


@router.get("")
async def list_forest_layers(
    type: Optional[str] = Query(None, description="Filter by forest type"),
    visible_only: bool = Query(False, description="Only visible layers"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """List the user's forest layers, newest first"""
    query = select(ForestLayer).where(ForestLayer.user_id == user.id)

    if type is not None:
        query = query.where(ForestLayer.type == type)
    if visible_only:
        query = query.where(ForestLayer.visible.is_(True))

    query = query.order_by(ForestLayer.created_at.desc(), ForestLayer.id.desc())

    result = await session.execute(query)
    layers = result.scalars().all()

    return success(data=[ForestLayerResponse.model_validate(layer) for layer in layers])


@router.post("", status_code=201)
async def create_forest_layer(
    layer_data: ForestLayerCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    layer = ForestLayer(user_id=user.id, **layer_data.model_dump())

    session.add(layer)
    await session.commit()
    await session.refresh(layer)

    logger.info("Forest layer created", layer_id=layer.id, type=layer.type, user_id=user.id)
    return success(
        data=ForestLayerResponse.model_validate(layer),
        message="Forest layer created successfully"
    )


@router.get("/{layer_id}")
async def get_forest_layer(
    layer_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    layer = await _get_owned_layer(session, user.id, layer_id)
    return success(data=ForestLayerResponse.model_validate(layer))


@router.put("/{layer_id}")
@router.patch("/{layer_id}")
async def update_forest_layer(
    layer_id: int,
    layer_data: ForestLayerUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Update display attributes (name, color, visibility, opacity)"""
    layer = await _get_owned_layer(session, user.id, layer_id)

    for key, value in layer_data.model_dump(exclude_none=True).items():
        setattr(layer, key, value)

    await session.commit()
    await session.refresh(layer)

    return success(
        data=ForestLayerResponse.model_validate(layer),
        message="Forest layer updated successfully"
    )


@router.delete("/{layer_id}")
async def delete_forest_layer(
    layer_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    layer = await _get_owned_layer(session, user.id, layer_id)

    await session.delete(layer)
    await session.commit()

    logger.info("Forest layer deleted", layer_id=layer_id, user_id=user.id)
    return success(message="Forest layer deleted successfully")
