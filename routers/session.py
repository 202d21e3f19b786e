"""
Session Router - persisted map view state
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_session, utcnow
from models.user import User
from models.user_session import UserSession
from schemas.common import success
from schemas.session import SaveStateRequest

router = APIRouter()


@router.post("/save-state")
async def save_state(
    request: SaveStateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Create or replace the user's map state"""
    result = await session.execute(
        select(UserSession).where(UserSession.user_id == user.id)
    )
    user_session = result.scalar_one_or_none()

    if user_session is None:
        user_session = UserSession(user_id=user.id, map_state=request.map_state, last_activity=utcnow())
        session.add(user_session)
    else:
        user_session.map_state = request.map_state
        user_session.last_activity = utcnow()

    await session.commit()
    return success()


@router.get("/get-state")
async def get_state(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    result = await session.execute(
        select(UserSession).where(UserSession.user_id == user.id)
    )
    user_session = result.scalar_one_or_none()

    return {"success": True, "data": user_session.map_state if user_session else None}
