# happypulse/services/risk_scorer.py
"""
Rule-based disengagement risk.

`score_risk` is a pure function of a RiskSnapshot. The snapshot builders
below are the only part that touches the store.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.config import settings
from happypulse.models.events import CheckIn
from happypulse.models.surveys import SurveyResponse
from happypulse.models.user import WellnessState
from happypulse.utils.dates import day_start, today as utc_today

NEVER_CHECKED_IN = 999


@dataclass(frozen=True)
class RiskSnapshot:
    weekly_check_ins: int
    average_mood: Optional[float]          # over the window; None when no check-ins
    days_since_last_check_in: Optional[int]  # None when the user never checked in
    recent_surveys: int                    # responses in the survey window


@dataclass(frozen=True)
class RiskResult:
    points: int
    risk_score: float   # 0..1
    risk_level: str
    indicators: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "points": self.points,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "indicators": list(self.indicators),
        }


def risk_level_for(points: int) -> str:
    if points >= 60:
        return "high"
    if points >= 30:
        return "medium"
    return "low"


def score_risk(snapshot: RiskSnapshot) -> RiskResult:
    points = 0
    indicators: List[str] = []

    weekly = snapshot.weekly_check_ins
    if weekly == 0:
        points += 40
        indicators.append("No recent activity")
    elif weekly < 3:
        points += 20
        indicators.append("Infrequent check-ins")
    elif weekly < 5:
        points += 10

    mood = snapshot.average_mood
    if mood is None:
        points += 15
        indicators.append("No mood data available")
    elif mood < 2:
        points += 30
        indicators.append("Low average mood")
    elif mood < 2.5:
        points += 20
        indicators.append("Low average mood")
    elif mood < 3:
        points += 10

    days = snapshot.days_since_last_check_in
    if days is None:
        points += 20
        indicators.append("No check-in history")
    elif days > 14:
        points += 20
        indicators.append("No check-in for over two weeks")
    elif days > 7:
        points += 15
        indicators.append("No check-in for over a week")
    elif days > 3:
        points += 5

    if snapshot.recent_surveys == 0:
        points += 10
    elif snapshot.recent_surveys < 2:
        points += 5

    level = risk_level_for(points)
    if level == "high":
        indicators.insert(0, "High risk classification")

    return RiskResult(
        points=points,
        risk_score=min(100, points) / 100,
        risk_level=level,
        indicators=indicators,
    )


# ── Snapshot builders ─────────────────────────────────────────────────────────

async def snapshots_for_users(
    db: AsyncSession,
    user_ids: Iterable[int],
    as_of: Optional[date] = None,
) -> Dict[int, RiskSnapshot]:
    """Bulk snapshot build: one grouped query per signal."""
    ids = list(user_ids)
    if not ids:
        return {}
    as_of = as_of or utc_today()
    window_start = as_of - timedelta(days=settings.RISK_WINDOW_DAYS - 1)
    survey_start = day_start(as_of - timedelta(days=settings.RISK_SURVEY_WINDOW_DAYS))

    weekly_rows = await db.execute(
        select(CheckIn.user_id, func.count(CheckIn.id), func.avg(CheckIn.mood))
        .where(CheckIn.user_id.in_(ids), CheckIn.day >= window_start, CheckIn.day <= as_of)
        .group_by(CheckIn.user_id)
    )
    weekly = {uid: (count, avg) for uid, count, avg in weekly_rows.all()}

    last_rows = await db.execute(
        select(CheckIn.user_id, func.max(CheckIn.day))
        .where(CheckIn.user_id.in_(ids), CheckIn.day <= as_of)
        .group_by(CheckIn.user_id)
    )
    last_day = {uid: day for uid, day in last_rows.all()}

    survey_rows = await db.execute(
        select(SurveyResponse.user_id, func.count(SurveyResponse.id))
        .where(SurveyResponse.user_id.in_(ids), SurveyResponse.created_at >= survey_start)
        .group_by(SurveyResponse.user_id)
    )
    surveys = dict(survey_rows.all())

    snapshots = {}
    for uid in ids:
        count, avg = weekly.get(uid, (0, None))
        last = last_day.get(uid)
        snapshots[uid] = RiskSnapshot(
            weekly_check_ins=int(count or 0),
            average_mood=round(float(avg), 2) if avg is not None else None,
            days_since_last_check_in=(as_of - last).days if last else None,
            recent_surveys=int(surveys.get(uid, 0)),
        )
    return snapshots


async def build_snapshot(db: AsyncSession, user_id: int, as_of: Optional[date] = None) -> RiskSnapshot:
    snapshots = await snapshots_for_users(db, [user_id], as_of)
    return snapshots[user_id]


def days_since(snapshot: RiskSnapshot) -> int:
    """Days since last check-in for display; never checked in reads as 999."""
    if snapshot.days_since_last_check_in is None:
        return NEVER_CHECKED_IN
    return snapshot.days_since_last_check_in


def apply_to_state(state: WellnessState, result: RiskResult) -> bool:
    """Write a result onto the derived state. Returns True when the user just entered high risk."""
    entered_high = result.risk_level == "high" and state.risk_level != "high"
    state.risk_score = result.risk_score
    state.risk_level = result.risk_level
    if result.risk_level != "high":
        state.risk_alert_sent = False
    return entered_high
