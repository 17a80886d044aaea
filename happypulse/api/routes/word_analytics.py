# happypulse/api/routes/word_analytics.py
"""
Word-frequency analytics over the derived index.

GET  /word-analytics/word-cloud                    → Company word cloud
GET  /word-analytics/users/{user_id}/word-cloud    → One employee's words
GET  /word-analytics/departments/{dept}/trends     → Daily top words for a department
GET  /word-analytics/summary                       → Index totals and participation
GET  /word-analytics/themes                        → Most frequent themes
POST /word-analytics/process-existing              → Backfill the index (admin)
"""
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import require_admin, require_analyst
from happypulse.api.envelope import ok
from happypulse.core.config import settings
from happypulse.core.errors import ValidationFailed, WindowTooLarge
from happypulse.db.session import get_db, get_index_db
from happypulse.models.user import User
from happypulse.services import analytics, word_index
from happypulse.services.directory import get_user, list_employees, validate_department
from happypulse.utils.dates import today as utc_today

router = APIRouter(prefix="/word-analytics", tags=["Word Analytics"])


# ── Helpers ───────────────────────────────────────────────────────────────────

def _window(start: Optional[date], end: Optional[date], default_days: int = 30):
    end = end or utc_today()
    start = start or end - timedelta(days=default_days)
    if end < start:
        raise ValidationFailed.field("from", "Start date must be before end date")
    if (end - start).days > settings.MAX_WINDOW_DAYS:
        raise WindowTooLarge()
    return start, end


def _split(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/word-cloud")
async def word_cloud(
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    departments: Optional[str] = None,
    sources: Optional[str] = None,
    min_occurrences: int = Query(3, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_analyst),
    index_db: AsyncSession = Depends(get_index_db),
):
    start, end = _window(start, end)
    depts = _split(departments)
    for d in depts or []:
        validate_department(d)
    return ok(await analytics.with_deadline(word_index.word_cloud(
        index_db, start, end, depts, _split(sources), min_occurrences, limit,
    )))


@router.get("/users/{user_id}/word-cloud")
async def user_word_cloud(
    user_id: int,
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    sources: Optional[str] = None,
    limit: int = Query(30, ge=1, le=200),
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
    index_db: AsyncSession = Depends(get_index_db),
):
    start, end = _window(start, end)
    user = await get_user(db, user_id)
    data = await word_index.user_word_cloud(index_db, user.id, start, end, _split(sources), limit)
    data["name"] = user.name
    data["department"] = user.department
    return ok(data)


@router.get("/departments/{department}/trends")
async def department_trends(
    department: str,
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_analyst),
    index_db: AsyncSession = Depends(get_index_db),
):
    validate_department(department)
    start, end = _window(start, end)
    return ok(await analytics.with_deadline(
        word_index.department_trends(index_db, department, start, end, limit)
    ))


@router.get("/summary")
async def summary(
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    department: Optional[str] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
    index_db: AsyncSession = Depends(get_index_db),
):
    if department:
        validate_department(department)
    start, end = _window(start, end)
    employees = await list_employees(db, departments=[department] if department else None)
    return ok(await analytics.with_deadline(
        word_index.summary(index_db, len(employees), start, end, department)
    ))


@router.get("/themes")
async def themes(
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    department: Optional[str] = None,
    limit: int = Query(10, ge=1, le=50),
    _: User = Depends(require_analyst),
    index_db: AsyncSession = Depends(get_index_db),
):
    if department:
        validate_department(department)
    start, end = _window(start, end)
    return ok(await analytics.with_deadline(
        word_index.top_themes(index_db, start, end, department, limit)
    ))


@router.post("/process-existing")
async def process_existing(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    index_db: AsyncSession = Depends(get_index_db),
):
    stats = await word_index.process_existing(db, index_db)
    return ok(stats, message="Existing data processed")
