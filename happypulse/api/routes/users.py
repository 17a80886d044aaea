# happypulse/api/routes/users.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import get_current_user
from happypulse.api.envelope import ok
from happypulse.db.session import get_db
from happypulse.models.user import Notification, User
from happypulse.schemas.user import NotificationOut, ProfileUpdate, UserProfile, WellnessOut
from happypulse.services import achievements
from happypulse.services.directory import get_state
from happypulse.services.event_processor import effective_streak

router = APIRouter(prefix="/users", tags=["Users"])


async def _profile(db: AsyncSession, user: User) -> dict:
    state = await get_state(db, user.id)
    wellness = WellnessOut.model_validate(state).model_dump()
    wellness["current_streak"] = effective_streak(state)
    return {
        **UserProfile.model_validate(user).model_dump(),
        "wellness": wellness,
        "achievements": sorted(await achievements.earned_keys(db, user.id)),
    }


@router.get("/me")
async def get_my_profile(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await _profile(db, current_user))


@router.patch("/me")
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    update_data = payload.model_dump(exclude_none=True)
    for field, value in update_data.items():
        setattr(current_user, field, value)
    await db.commit()
    await db.refresh(current_user)
    return ok(await _profile(db, current_user), message="Profile updated")


@router.get("/me/notifications")
async def my_notifications(
    unread_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    result = await db.execute(stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit))
    return ok([NotificationOut.model_validate(n) for n in result.scalars().all()])
