# happypulse/api/routes/checkins.py
"""
Daily mood check-in endpoints.

POST /checkins          → Record today's check-in (once per UTC day)
GET  /checkins          → Own check-in history, newest first
GET  /checkins/today    → Whether the current user has checked in today
GET  /checkins/trend    → Daily mood series for the last N days
GET  /checkins/stats    → Personal totals, mood distribution and streaks
"""
from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import get_current_user, get_processor
from happypulse.api.envelope import ok
from happypulse.core.config import settings
from happypulse.core.constants import MOOD_LABELS, MOOD_MAX, MOOD_MIN
from happypulse.db.session import get_db
from happypulse.models.events import CheckIn
from happypulse.models.user import User
from happypulse.schemas.events import CheckInCreate, CheckInOut
from happypulse.schemas.user import WellnessOut
from happypulse.services.directory import get_state
from happypulse.services.event_processor import EventProcessor, effective_streak
from happypulse.services.event_store import AggregateSpec, EventFilter, EventStore
from happypulse.utils.dates import iter_days, today as utc_today
from happypulse.utils.redis_client import invalidate_leaderboard

router = APIRouter(prefix="/checkins", tags=["Check-ins"])


def _wellness(state) -> dict:
    data = WellnessOut.model_validate(state).model_dump()
    data["current_streak"] = effective_streak(state)
    return data


@router.post("", status_code=201)
async def create_checkin(
    payload: CheckInCreate,
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    checkin, state = await processor.record_checkin(
        current_user, payload.mood, payload.feedback, payload.source
    )
    # Coins moved, so cached leaderboard pages are stale
    await invalidate_leaderboard()
    return ok(
        {"checkin": CheckInOut.model_validate(checkin), "wellness": _wellness(state)},
        message=f"Check-in recorded! You earned {checkin.happy_coins_earned} Happy Coins.",
    )


@router.get("")
async def list_checkins(
    page: int = Query(1, ge=1),
    limit: int = Query(30, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    total = (await db.execute(
        select(func.count()).select_from(CheckIn).where(CheckIn.user_id == current_user.id)
    )).scalar_one()
    result = await db.execute(
        select(CheckIn)
        .where(CheckIn.user_id == current_user.id)
        .order_by(CheckIn.day.desc(), CheckIn.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return ok(
        [CheckInOut.model_validate(c) for c in result.scalars().all()],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.get("/today")
async def todays_checkin(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    checkin = await EventStore(db).checkin_for_day(current_user.id, utc_today())
    return ok({
        "checked_in": checkin is not None,
        "checkin": CheckInOut.model_validate(checkin) if checkin else None,
    })


@router.get("/trend")
async def mood_trend(
    days: int = Query(30, ge=1, le=366),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    end = utc_today()
    start = end - timedelta(days=days - 1)
    result = await db.execute(
        select(CheckIn.day, CheckIn.mood)
        .where(CheckIn.user_id == current_user.id, CheckIn.day >= start, CheckIn.day <= end)
    )
    moods = dict(result.all())
    series = [
        {
            "date": day.isoformat(),
            "mood": moods.get(day),
            "mood_label": MOOD_LABELS.get(moods[day]) if day in moods else None,
        }
        for day in iter_days(start, end)
    ]
    recorded = list(moods.values())
    return ok({
        "days": days,
        "trend": series,
        "check_ins": len(recorded),
        "average_mood": round(sum(recorded) / len(recorded), 1) if recorded else None,
    })


@router.get("/stats")
async def checkin_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    store = EventStore(db)
    flt = EventFilter(user_id=current_user.id)
    by_mood = await store.aggregate(AggregateSpec(kind="checkin", group_by="mood", filter=flt))
    distribution = {str(m): 0 for m in range(MOOD_MIN, MOOD_MAX + 1)}
    for bucket in by_mood:
        distribution[str(bucket.key)] = bucket.count

    week_start = utc_today() - timedelta(days=6)
    this_week = (await db.execute(
        select(func.count()).select_from(CheckIn)
        .where(CheckIn.user_id == current_user.id, CheckIn.day >= week_start)
    )).scalar_one()

    state = await get_state(db, current_user.id)
    return ok({
        "total_check_ins": state.total_check_ins,
        "average_mood": state.average_mood,
        "mood_distribution": distribution,
        "check_ins_this_week": this_week,
        "current_streak": effective_streak(state),
        "longest_streak": state.longest_streak,
        "happy_coins": state.happy_coins,
        "average_mood_sample": settings.AVERAGE_MOOD_SAMPLE,
    })
