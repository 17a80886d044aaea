# happypulse/services/leaderboard.py
"""
Happy Coins leaderboards.

Active employees ordered by happy_coins desc, then user id asc; a rank is the
1-based position in that order. Pages are cached in Redis when available.
"""
from typing import List, Optional

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.config import settings
from happypulse.core.errors import NotFound, ValidationFailed
from happypulse.models.user import User, WellnessState
from happypulse.services.directory import validate_department
from happypulse.services.event_processor import effective_streak
from happypulse.utils.redis_client import get_page, leaderboard_key, put_page

NEIGHBOR_WINDOW = 5


def _base(department: Optional[str] = None):
    stmt = (
        select(User, WellnessState)
        .join(WellnessState, WellnessState.user_id == User.id)
        .where(User.is_active.is_(True), User.role == "employee")
    )
    if department:
        stmt = stmt.where(User.department == department)
    return stmt


def _ordered(stmt):
    return stmt.order_by(WellnessState.happy_coins.desc(), User.id.asc())


def _entry(rank: int, user: User, state: WellnessState) -> dict:
    return {
        "rank": rank,
        "user_id": user.id,
        "name": user.name,
        "department": user.department,
        "happy_coins": state.happy_coins,
        "current_streak": effective_streak(state),
        "longest_streak": state.longest_streak,
    }


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.LEADERBOARD_PAGE_SIZE
    if limit < 1:
        raise ValidationFailed.field("limit", "Limit must be at least 1")
    return min(limit, settings.LEADERBOARD_MAX_PAGE_SIZE)


async def count_ranked(db: AsyncSession, department: Optional[str] = None) -> int:
    sub = _base(department).subquery()
    return (await db.execute(select(func.count()).select_from(sub))).scalar_one()


async def rank_of(db: AsyncSession, user: User, department: Optional[str] = None) -> Optional[int]:
    """1-based rank, or None when the user is not on this board."""
    state = (await db.execute(
        select(WellnessState).where(WellnessState.user_id == user.id)
    )).scalar_one_or_none()
    if state is None or not user.is_active or user.role != "employee":
        return None
    if department and user.department != department:
        return None
    ahead = _base(department).where(
        or_(
            WellnessState.happy_coins > state.happy_coins,
            and_(WellnessState.happy_coins == state.happy_coins, User.id < user.id),
        )
    ).subquery()
    return (await db.execute(select(func.count()).select_from(ahead))).scalar_one() + 1


async def _slice(db: AsyncSession, department: Optional[str], offset: int, limit: int) -> List[dict]:
    result = await db.execute(_ordered(_base(department)).offset(offset).limit(limit))
    return [_entry(offset + i + 1, user, state) for i, (user, state) in enumerate(result.all())]


async def neighbors(db: AsyncSession, rank: int, department: Optional[str] = None) -> List[dict]:
    start = max(1, rank - NEIGHBOR_WINDOW)
    return await _slice(db, department, start - 1, rank + NEIGHBOR_WINDOW - start + 1)


async def board(
    db: AsyncSession,
    requester: User,
    department: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> dict:
    if department:
        validate_department(department)
    if page < 1:
        raise ValidationFailed.field("page", "Page must be at least 1")
    limit = clamp_limit(limit)

    cache_key = leaderboard_key(department, page, limit)
    cached = await get_page(cache_key)
    if cached is None:
        total = await count_ranked(db, department)
        cached = {
            "entries": await _slice(db, department, (page - 1) * limit, limit),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }
        await put_page(cache_key, cached)

    rank = await rank_of(db, requester, department)
    return {
        "department": department,
        "leaderboard": cached["entries"],
        "pagination": cached["pagination"],
        "current_user": {
            "rank": rank,
            "neighbors": await neighbors(db, rank, department) if rank else [],
        },
    }


async def user_ranking(db: AsyncSession, user_id: int) -> dict:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    global_rank = await rank_of(db, user)
    department_rank = await rank_of(db, user, user.department)
    return {
        "user_id": user.id,
        "name": user.name,
        "department": user.department,
        "happy_coins": user.wellness.happy_coins if user.wellness else 0,
        "global_rank": global_rank,
        "department_rank": department_rank,
        "total_ranked": await count_ranked(db),
        "department_total": await count_ranked(db, user.department),
        "nearby": await neighbors(db, global_rank) if global_rank else [],
    }


async def stats(db: AsyncSession) -> dict:
    sub = _base().subquery()
    overall = (await db.execute(
        select(
            func.count(), func.coalesce(func.sum(sub.c.happy_coins), 0), func.avg(sub.c.happy_coins),
            func.max(sub.c.happy_coins), func.min(sub.c.happy_coins),
        ).select_from(sub)
    )).one()
    by_dept = (await db.execute(
        select(
            sub.c.department, func.count(), func.sum(sub.c.happy_coins),
            func.avg(sub.c.happy_coins), func.max(sub.c.happy_coins),
        ).select_from(sub).group_by(sub.c.department)
    )).all()
    departments = [
        {
            "department": dept,
            "employee_count": count,
            "total_happy_coins": int(total or 0),
            "average_happy_coins": round(float(avg or 0), 1),
            "max_happy_coins": int(mx or 0),
        }
        for dept, count, total, avg, mx in by_dept
    ]
    departments.sort(key=lambda d: (-d["average_happy_coins"], d["department"]))
    return {
        "overall": {
            "total_employees": overall[0],
            "total_happy_coins": int(overall[1] or 0),
            "average_happy_coins": round(float(overall[2] or 0), 1),
            "max_happy_coins": int(overall[3] or 0),
            "min_happy_coins": int(overall[4] or 0),
        },
        "by_department": departments,
    }
