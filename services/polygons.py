"""
Polygon Persistence Service - owner-scoped CRUD and bounds queries
"""
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from errors import NotFoundError, OwnershipError, ValidationError
from models.polygon import Polygon
from schemas.polygon import PolygonCreate, PolygonUpdate
from services.records import Bounds

logger = structlog.get_logger()

OBJECT_ID_TAKEN = "The object id has already been taken."

NULLABLE_FIELDS = frozenset({
    "subdistrict", "spoc_name", "spoc_code", "lot_no", "mspo_certification", "land_title",
})


async def list_polygons(
    session: AsyncSession,
    user_id: int,
    bounds: Optional[Bounds] = None,
    state: Optional[str] = None
) -> List[Polygon]:
    """
    List polygons owned by a user, newest first.

    Bounds are matched against the representative latitude/longitude,
    inclusive on every edge.
    """
    query = select(Polygon).where(Polygon.user_id == user_id)

    if bounds is not None:
        query = query.where(
            Polygon.latitude.between(bounds.south, bounds.north),
            Polygon.longitude.between(bounds.west, bounds.east),
        )
    if state is not None:
        query = query.where(Polygon.state == state)

    query = query.order_by(Polygon.created_at.desc(), Polygon.id.desc())

    result = await session.execute(query)
    return list(result.scalars().all())


async def get_polygon(session: AsyncSession, user_id: int, polygon_id: int) -> Polygon:
    """Fetch a polygon, checking that ``user_id`` owns it"""
    polygon = await session.get(Polygon, polygon_id)

    if polygon is None:
        raise NotFoundError("Polygon", polygon_id)

    if polygon.user_id != user_id:
        logger.warning("Polygon access denied", polygon_id=polygon_id, user_id=user_id)
        raise OwnershipError("Polygon", polygon_id)

    return polygon


async def next_object_id(session: AsyncSession) -> int:
    """Smallest object id above every stored one"""
    result = await session.execute(select(func.max(Polygon.object_id)))
    return (result.scalar() or 0) + 1


async def create_polygon(session: AsyncSession, user_id: int, data: PolygonCreate) -> Polygon:
    """Create a polygon; object ids are unique across all users"""
    existing = await session.execute(
        select(Polygon.id).where(Polygon.object_id == data.object_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise ValidationError([OBJECT_ID_TAKEN], field_errors={"object_id": [OBJECT_ID_TAKEN]})

    polygon = Polygon(user_id=user_id, **data.model_dump())
    session.add(polygon)

    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.error("Polygon insert failed", object_id=data.object_id, error=str(e.orig))
        raise ValidationError([OBJECT_ID_TAKEN], field_errors={"object_id": [OBJECT_ID_TAKEN]})

    await session.refresh(polygon)

    logger.info("Polygon created", polygon_id=polygon.id, object_id=polygon.object_id, user_id=user_id)
    return polygon


async def update_polygon(
    session: AsyncSession,
    user_id: int,
    polygon_id: int,
    data: PolygonUpdate
) -> Polygon:
    """Apply the fields present in ``data`` to an owned polygon"""
    polygon = await get_polygon(session, user_id, polygon_id)
    changes = data.model_dump(exclude_unset=True)

    field_errors = {
        key: [f"The {key} field must not be null."]
        for key, value in changes.items()
        if value is None and key not in NULLABLE_FIELDS
    }
    if field_errors:
        raise ValidationError(
            [message for messages in field_errors.values() for message in messages],
            field_errors=field_errors,
        )

    for key, value in changes.items():
        setattr(polygon, key, value)

    await session.commit()
    await session.refresh(polygon)

    logger.info("Polygon updated", polygon_id=polygon_id, user_id=user_id)
    return polygon


async def delete_polygon(session: AsyncSession, user_id: int, polygon_id: int) -> None:
    polygon = await get_polygon(session, user_id, polygon_id)

    await session.delete(polygon)
    await session.commit()

    logger.info("Polygon deleted", polygon_id=polygon_id, user_id=user_id)
