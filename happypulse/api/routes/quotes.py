# happypulse/api/routes/quotes.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import get_current_user, get_processor
from happypulse.api.envelope import ok
from happypulse.core.errors import ValidationFailed
from happypulse.db.session import get_db
from happypulse.models.events import DailyQuote
from happypulse.models.user import User
from happypulse.schemas.events import QuoteEngagement, QuoteOut
from happypulse.services.event_processor import EventProcessor

router = APIRouter(prefix="/quotes", tags=["Quotes"])

ACTIONS = ("view", "like", "share", "feedback")


@router.get("/today")
async def todays_quote(
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    return ok(QuoteOut.model_validate(await processor.todays_quote(current_user)))


@router.get("/history")
async def quote_history(
    limit: int = Query(30, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(DailyQuote)
        .where(DailyQuote.user_id == current_user.id)
        .order_by(DailyQuote.date.desc())
        .limit(limit)
    )
    return ok([QuoteOut.model_validate(q) for q in result.scalars().all()])


@router.post("/{quote_id}/{action}")
async def engage(
    quote_id: int,
    action: str,
    payload: QuoteEngagement = QuoteEngagement(),
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    if action not in ACTIONS:
        raise ValidationFailed.field("action", f"Action must be one of {', '.join(ACTIONS)}")
    row = await processor.engage_quote(
        current_user, quote_id, action, rating=payload.rating, time_spent_seconds=payload.time_spent,
    )
    return ok(QuoteOut.model_validate(row))
