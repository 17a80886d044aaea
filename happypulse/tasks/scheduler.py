# happypulse/tasks/scheduler.py
"""
Time-based jobs (UTC):
- streak_sweep           daily 00:05   reset expired streaks, re-score risk, alert HR
- quote_archival         daily 02:00   archive quote rows older than the retention window
- pulse_materialization  Monday 08:00  ensure this week's pulse survey exists, send reminders

Every job is idempotent. A failure is logged and the job simply runs again on
its next tick. `trigger(name)` runs a job on demand through the same wrapper.
"""
import logging
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from happypulse.core.config import settings
from happypulse.core.constants import SURVEY_REMINDER
from happypulse.core.errors import DependencyUnavailable
from happypulse.db.session import AsyncSessionLocal
from happypulse.models.events import DailyQuote
from happypulse.models.surveys import Survey, SurveyResponse
from happypulse.models.user import Notification
from happypulse.services import quote_service
from happypulse.services.directory import list_employees
from happypulse.services.event_processor import EventProcessor
from happypulse.services.notifications import NotificationDispatcher
from happypulse.utils.dates import day_start, iso_week_key, today as utc_today, utcnow

logger = logging.getLogger("scheduler")

scheduler = AsyncIOScheduler(
    timezone="UTC",
    job_defaults={"misfire_grace_time": 300, "coalesce": True, "max_instances": 1},
)

# Set by start(); jobs hand risk alerts to the post-commit queue
_queue = None
_status: Dict[str, Dict[str, Any]] = {}


# ── Jobs ──────────────────────────────────────────────────────────────────────

async def streak_sweep(today: Optional[date] = None, session_factory=AsyncSessionLocal, queue=None) -> dict:
    queue = queue or _queue
    async with session_factory() as db:
        result = await EventProcessor(db).nightly_sweep(today)
    deferred = []
    for user_id in result["alerts_pending"]:
        if queue is None:
            deferred.append(user_id)
            continue
        try:
            queue.submit("risk_alert", user_id=user_id)
        except DependencyUnavailable as e:
            # Still unsent, so the next sweep picks it up again
            logger.error(f"[scheduler] risk alert for user {user_id} deferred: {e.message}")
            deferred.append(user_id)
    if deferred and queue is None:
        logger.warning(f"[scheduler] no task queue, {len(deferred)} risk alerts deferred")
    result["alerts_deferred"] = deferred
    return result


async def quote_archival(today: Optional[date] = None, session_factory=AsyncSessionLocal) -> dict:
    cutoff = (today or utc_today()) - timedelta(days=settings.QUOTE_ARCHIVE_DAYS)
    async with session_factory() as db:
        result = await db.execute(
            update(DailyQuote)
            .where(DailyQuote.date < cutoff, DailyQuote.status != "archived")
            .values(status="archived", updated_at=utcnow())
        )
        await db.commit()
    return {"archived": result.rowcount or 0, "cutoff": cutoff.isoformat()}


async def _ensure_pulse_survey(db, week_key: str) -> Survey:
    result = await db.execute(select(Survey).where(Survey.week_key == week_key))
    survey = result.scalar_one_or_none()
    if survey is not None:
        return survey

    # Close last week's pulse before opening the new one
    await db.execute(
        update(Survey)
        .where(Survey.type == "pulse", Survey.status == "active", Survey.week_key != week_key)
        .values(status="closed")
    )
    survey = Survey(
        title=quote_service.pulse_title(week_key),
        description="A two-minute check on how your week went.",
        type="pulse",
        status="active",
        questions=quote_service.pulse_questions(),
        reward_happy_coins=settings.PULSE_SURVEY_REWARD,
        week_key=week_key,
    )
    db.add(survey)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        result = await db.execute(select(Survey).where(Survey.week_key == week_key))
        return result.scalar_one()
    logger.info(f"[scheduler] created pulse survey {week_key}")
    return survey


async def pulse_materialization(
    today: Optional[date] = None,
    session_factory=AsyncSessionLocal,
    notifier: Optional[NotificationDispatcher] = None,
) -> dict:
    today = today or utc_today()
    week_key = iso_week_key(today)
    week_start = today - timedelta(days=today.weekday())
    notifier = notifier or NotificationDispatcher()

    async with session_factory() as db:
        survey = await _ensure_pulse_survey(db, week_key)

        responded = set((await db.execute(
            select(SurveyResponse.user_id).where(SurveyResponse.created_at >= day_start(today - timedelta(days=7)))
        )).scalars().all())
        reminded = set((await db.execute(
            select(Notification.user_id).where(
                Notification.type == SURVEY_REMINDER,
                Notification.created_at >= day_start(week_start),
            )
        )).scalars().all())

        sent = 0
        for employee in await list_employees(db):
            if employee.id in responded or employee.id in reminded:
                continue
            if survey.target_departments and employee.department not in survey.target_departments:
                continue
            await notifier.dispatch(
                db, employee, SURVEY_REMINDER,
                title="Your weekly pulse is ready",
                message=f"Take two minutes to answer '{survey.title}' and earn {survey.reward_happy_coins} Happy Coins.",
                data={"survey_id": survey.id, "week_key": week_key},
            )
            sent += 1
        await db.commit()
    return {"survey_id": survey.id, "week_key": week_key, "reminders_sent": sent}


JOBS: Dict[str, Callable[..., Awaitable[dict]]] = {
    "streak_sweep": streak_sweep,
    "quote_archival": quote_archival,
    "pulse_materialization": pulse_materialization,
}


# ── Runner ────────────────────────────────────────────────────────────────────

async def run_job(name: str, **kwargs) -> Optional[dict]:
    """Run one job, recording its outcome. Failures are logged, never raised."""
    entry = _status.setdefault(name, {"runs": 0, "failures": 0})
    entry["runs"] += 1
    entry["last_run"] = utcnow().isoformat()
    try:
        result = await JOBS[name](**kwargs)
    except Exception as e:
        entry["failures"] += 1
        entry["last_error"] = f"{e.__class__.__name__}: {e}"
        logger.exception(f"[scheduler] {name} failed; will retry on next tick")
        return None
    entry["last_result"] = result
    entry.pop("last_error", None)
    logger.info(f"[scheduler] {name} done: {result}")
    return result


async def trigger(name: str, **kwargs) -> Optional[dict]:
    if name not in JOBS:
        raise KeyError(f"Unknown job '{name}'")
    return await run_job(name, **kwargs)


def status() -> Dict[str, Dict[str, Any]]:
    jobs = {job.id: job for job in scheduler.get_jobs()} if scheduler.running else {}
    out = {}
    for name in JOBS:
        entry = dict(_status.get(name, {"runs": 0, "failures": 0}))
        job = jobs.get(name)
        entry["next_run"] = job.next_run_time.isoformat() if job and job.next_run_time else None
        out[name] = entry
    return out


def start(queue=None) -> None:
    global _queue
    _queue = queue
    scheduler.add_job(run_job, "cron", args=["streak_sweep"], id="streak_sweep",
                      hour=0, minute=5, replace_existing=True)
    scheduler.add_job(run_job, "cron", args=["quote_archival"], id="quote_archival",
                      hour=2, minute=0, replace_existing=True)
    scheduler.add_job(run_job, "cron", args=["pulse_materialization"], id="pulse_materialization",
                      day_of_week="mon", hour=8, minute=0, replace_existing=True)
    scheduler.start()
    logger.info("[scheduler] started")


def shutdown() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[scheduler] stopped")
