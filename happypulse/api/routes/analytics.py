# happypulse/api/routes/analytics.py
"""
HR/admin analytics. Every rollup runs under the aggregate deadline.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import require_analyst
from happypulse.api.envelope import ok
from happypulse.db.session import get_db
from happypulse.models.user import User
from happypulse.services import analytics

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/company-overview")
async def company_overview(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(analytics.company_overview(db, start_date, end_date)))


@router.get("/department/{department}")
async def department_analytics(
    department: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    include_individuals: bool = False,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(
        analytics.department_analytics(db, department, start_date, end_date, include_individuals)
    ))


@router.get("/risk-assessment")
async def risk_assessment(
    risk_level: Optional[str] = None,
    risk_level_alias: Optional[str] = Query(None, alias="riskLevel"),
    department: Optional[str] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    level = risk_level or risk_level_alias
    return ok(await analytics.with_deadline(analytics.risk_assessment(db, level, department)))


@router.get("/engagement")
async def engagement(
    period: int = Query(30),
    department: Optional[str] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(analytics.engagement_metrics(db, period, department)))


@router.get("/enps")
async def enps(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    department: Optional[str] = None,
    survey_id: Optional[int] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(
        analytics.enps(db, start_date, end_date, department, survey_id)
    ))


@router.get("/sentiment")
async def sentiment(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    department: Optional[str] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(analytics.sentiment(db, start_date, end_date, department)))


@router.get("/dashboard")
async def dashboard(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    department: Optional[str] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(analytics.dashboard(db, start_date, end_date, department)))


@router.get("/demographics")
async def demographics(
    department: Optional[str] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(analytics.demographics(db, department)))


@router.get("/export")
async def export(
    type: str = "summary",
    format: str = "json",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    _: User = Depends(require_analyst),
    db: AsyncSession = Depends(get_db),
):
    return ok(await analytics.with_deadline(analytics.export(db, type, format, start_date, end_date)))
