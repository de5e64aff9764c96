# taskflow/core/auth.py
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from taskflow.database import get_db
from taskflow.models.user import User
from taskflow.core.actor import Actor

# The acting user is identified by the gateway in front of this service;
# credentials are verified there, not here.

async def get_current_actor(
    db: AsyncSession = Depends(get_db),
    x_user_id: int = Header(...),
) -> Actor:
    unknown_user = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unknown or inactive user",
    )
    result = await db.execute(select(User).where(User.id == x_user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise unknown_user
    return Actor.from_user(user)
