# happypulse/tasks/background.py
"""
Post-commit jobs:
- Word-frequency indexing
- Notification dispatch
- Achievement evaluation
- Journal insight analysis
- High-risk alerts to HR

Each job opens its own sessions from the TaskContext; the request session
that produced the event is already closed by the time these run.
"""
import logging

from happypulse.core.constants import ACHIEVEMENT_EARNED, RISK_ALERT
from happypulse.models.events import JournalEntry
from happypulse.models.user import User
from happypulse.services import achievements, insight_service, word_index
from happypulse.services.directory import list_staff
from happypulse.services.event_processor import EventProcessor
from happypulse.tasks.queue import TaskContext, post_commit_task
from happypulse.utils.redis_client import invalidate_leaderboard

logger = logging.getLogger("background_tasks")


@post_commit_task("index_event")
async def index_event(ctx: TaskContext, source_kind: str, source_id: int) -> None:
    async with ctx.session_factory() as db, ctx.index_session_factory() as index_db:
        await word_index.index_source(db, index_db, source_kind, source_id)


@post_commit_task("notify")
async def notify(
    ctx: TaskContext,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: dict = None,
    priority: str = "medium",
) -> None:
    async with ctx.session_factory() as db:
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            logger.info(f"[notification] skipping {type} for inactive/missing user {user_id}")
            return
        await ctx.notifier.dispatch(db, user, type, title, message, data, priority)
        await db.commit()


@post_commit_task("evaluate_achievements")
async def evaluate_achievements(ctx: TaskContext, user_id: int) -> None:
    async with ctx.session_factory() as db:
        awarded = await achievements.evaluate(db, user_id)
        if not awarded:
            return
        user = await db.get(User, user_id)
        for key in awarded:
            name = achievements.describe(key)
            await ctx.notifier.dispatch(
                db, user, ACHIEVEMENT_EARNED,
                title=f"Achievement unlocked: {name}",
                message=f"Congratulations! You earned the '{name}' badge.",
                data={"achievement": key},
            )
        await db.commit()
    # Rank pages may show badges; refresh them
    await invalidate_leaderboard()


@post_commit_task("analyze_journal")
async def analyze_journal(ctx: TaskContext, journal_id: int) -> None:
    async with ctx.session_factory() as db:
        entry = await db.get(JournalEntry, journal_id)
        if entry is None or entry.is_deleted:
            return
        entry.ai_insights = await insight_service.analyze_journal(entry.title, entry.body, entry.mood)
        await db.commit()
        logger.info(f"[insight] journal {journal_id} analysed ({entry.ai_insights.get('source')})")


@post_commit_task("risk_alert")
async def risk_alert(ctx: TaskContext, user_id: int) -> None:
    """One alert per entry into high risk, sent to every active HR/admin user."""
    async with ctx.session_factory() as db:
        processor = EventProcessor(db)
        if not await processor.mark_risk_alert_sent(user_id):
            return
        employee = await db.get(User, user_id)
        for staff in await list_staff(db):
            await ctx.notifier.dispatch(
                db, staff, RISK_ALERT,
                title="Employee wellness alert",
                message=f"{employee.name} ({employee.department}) has moved into the high risk category.",
                data={"employee_id": user_id, "department": employee.department},
                priority="high",
            )
        await db.commit()
        logger.info(f"[risk] alert sent for user {user_id}")
