# happypulse/api/routes/surveys.py
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import get_current_user, get_processor
from happypulse.api.envelope import ok
from happypulse.db.session import get_db
from happypulse.models.surveys import Survey, SurveyResponse
from happypulse.models.user import User
from happypulse.schemas.events import SurveyAnswers, SurveyOut, SurveyResponseOut
from happypulse.services.event_processor import EventProcessor
from happypulse.utils.redis_client import invalidate_leaderboard

router = APIRouter(prefix="/surveys", tags=["Surveys"])


@router.get("/active")
async def active_surveys(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active surveys open to the caller's department, flagged when already answered."""
    result = await db.execute(
        select(Survey).where(Survey.status == "active").order_by(Survey.created_at.desc(), Survey.id.desc())
    )
    surveys = [
        s for s in result.scalars().all()
        if not s.target_departments or current_user.department in s.target_departments
    ]
    answered = set((await db.execute(
        select(SurveyResponse.survey_id).where(SurveyResponse.user_id == current_user.id)
    )).scalars().all())
    return ok([
        dict(SurveyOut.model_validate(s).model_dump(), responded=s.id in answered)
        for s in surveys
    ])


@router.post("/{survey_id}/responses", status_code=201)
async def submit_response(
    survey_id: int,
    payload: SurveyAnswers,
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    response, state = await processor.submit_survey_response(current_user, survey_id, payload.answers)
    await invalidate_leaderboard()
    return ok(
        {"response": SurveyResponseOut.model_validate(response), "happy_coins": state.happy_coins},
        message="Survey response recorded",
    )
