# happypulse/api/deps.py
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from happypulse.core.errors import Forbidden, Unauthenticated
from happypulse.core.security import decode_access_token
from happypulse.db.session import get_db
from happypulse.models.user import User
from happypulse.services.event_processor import EventProcessor

# Tokens are issued by the identity provider; this only tells OpenAPI where
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise Unauthenticated("Authentication required")
    user_id = decode_access_token(token)
    if user_id is None or not str(user_id).isdigit():
        raise Unauthenticated()

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise Unauthenticated()
    return user


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of `roles`."""
    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise Forbidden(f"Requires role: {' or '.join(roles)}")
        return user
    return checker


require_analyst = require_roles("hr", "admin")
require_admin = require_roles("admin")


def get_task_queue(request: Request):
    return getattr(request.app.state, "task_queue", None)


async def get_processor(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> EventProcessor:
    return EventProcessor(db, queue=get_task_queue(request))
