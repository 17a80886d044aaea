# happypulse/services/achievements.py
"""
Badge evaluation. Achievements are recognition only; they never credit
Happy Coins, so re-evaluation can run any number of times.
"""
import logging
from typing import Dict, List

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.models.events import CheckIn
from happypulse.models.surveys import SurveyResponse
from happypulse.models.user import UserAchievement, WellnessState

logger = logging.getLogger("achievements")

GOOD_MOOD = 4

# key -> (name, criteria type, threshold)
ACHIEVEMENTS: Dict[str, tuple] = {
    "first_steps":         ("First Steps",         "total_checkins", 1),
    "wellness_warrior":    ("Wellness Warrior",    "total_checkins", 10),
    "dedicated_member":    ("Dedicated Member",    "total_checkins", 30),
    "wellness_champion":   ("Wellness Champion",   "total_checkins", 100),
    "getting_started":     ("Getting Started",     "streak_days", 3),
    "week_warrior":        ("Week Warrior",        "streak_days", 7),
    "consistency_king":    ("Consistency King",    "streak_days", 14),
    "monthly_master":      ("Monthly Master",      "streak_days", 30),
    "unstoppable_force":   ("Unstoppable Force",   "streak_days", 60),
    "happiness_hero":      ("Happiness Hero",      "consecutive_good_mood", 3),
    "positivity_pioneer":  ("Positivity Pioneer",  "consecutive_good_mood", 5),
    "survey_starter":      ("Survey Starter",      "survey_completion", 1),
    "feedback_champion":   ("Feedback Champion",   "survey_completion", 5),
}


async def _consecutive_good_moods(db: AsyncSession, user_id: int, limit: int) -> int:
    result = await db.execute(
        select(CheckIn.mood).where(CheckIn.user_id == user_id).order_by(CheckIn.day.desc()).limit(limit)
    )
    run = 0
    for (mood,) in result.all():
        if mood < GOOD_MOOD:
            break
        run += 1
    return run


async def progress(db: AsyncSession, user_id: int) -> Dict[str, int]:
    """Current value per criteria type."""
    state = (await db.execute(
        select(WellnessState).where(WellnessState.user_id == user_id)
    )).scalar_one()
    surveys = (await db.execute(
        select(func.count(SurveyResponse.id)).where(SurveyResponse.user_id == user_id)
    )).scalar_one()
    longest_threshold = max(v for _, t, v in ACHIEVEMENTS.values() if t == "consecutive_good_mood")
    return {
        "total_checkins": state.total_check_ins,
        "streak_days": max(state.current_streak, state.longest_streak),
        "consecutive_good_mood": await _consecutive_good_moods(db, user_id, longest_threshold),
        "survey_completion": int(surveys or 0),
    }


async def earned_keys(db: AsyncSession, user_id: int) -> set:
    result = await db.execute(
        select(UserAchievement.achievement_key).where(UserAchievement.user_id == user_id)
    )
    return {k for (k,) in result.all()}


async def evaluate(db: AsyncSession, user_id: int) -> List[str]:
    """Award every newly met achievement. Returns the keys awarded by this call."""
    current = await progress(db, user_id)
    already = await earned_keys(db, user_id)
    awarded = []
    for key, (name, criteria, threshold) in ACHIEVEMENTS.items():
        if key in already or current.get(criteria, 0) < threshold:
            continue
        db.add(UserAchievement(user_id=user_id, achievement_key=key))
        awarded.append(key)
    if awarded:
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent evaluation already awarded them
            await db.rollback()
            return []
        logger.info(f"[achievements] user {user_id} earned {', '.join(awarded)}")
    return awarded


def describe(key: str) -> str:
    return ACHIEVEMENTS[key][0]
