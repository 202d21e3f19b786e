"""
Authenticated user resolution

The identity provider in front of the service asserts the user through
request headers; users are provisioned on their first request.
"""
from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from config import get_settings
from database import get_session
from models.user import User

logger = structlog.get_logger()
settings = get_settings()


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> User:
    """Dependency returning the authenticated user"""
    raw_id = request.headers.get(settings.user_id_header)
    if not raw_id:
        raise HTTPException(status_code=401, detail="Unauthenticated")

    try:
        user_id = int(raw_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Unauthenticated")

    user = await session.get(User, user_id)
    if user is None:
        user = User(
            id=user_id,
            email=request.headers.get(settings.user_email_header),
            name=request.headers.get(settings.user_name_header),
        )
        session.add(user)
        await session.commit()
        logger.info("User provisioned", user_id=user_id)

    return user
