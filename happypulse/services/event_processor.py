# happypulse/services/event_processor.py
"""
Event processor: the single writer of WellnessState.

Each state-changing event runs as one transaction under a per-user lock:
insert the event, apply reward and streak rules, refresh average mood and
risk, commit. Side effects (index, notifications, achievements, insights)
are submitted to the post-commit queue only after the commit.

Writes are shielded from caller cancellation: once a check-in has started,
a disconnecting client does not abort it.
"""
import asyncio
import logging
import math
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.config import settings
from happypulse.core.constants import (
    CHECKIN_SOURCES, FEEDBACK_MAX_LENGTH, JOURNAL_BODY_MAX_LENGTH, JOURNAL_CATEGORIES,
    JOURNAL_PRIVACY, JOURNAL_TITLE_MAX_LENGTH, MOOD_MAX, MOOD_MIN, READING_WORDS_PER_MINUTE,
    CHECK_IN_COMPLETED, SURVEY_COMPLETED, STREAK_MILESTONE,
)
from happypulse.core.errors import (
    AlreadyCheckedIn, DependencyUnavailable, Forbidden, InvalidMood, NotFound, ValidationFailed,
)
from happypulse.models.events import CheckIn, DailyQuote, JournalEntry
from happypulse.models.surveys import Survey, SurveyResponse
from happypulse.models.user import User, WellnessState
from happypulse.services import quote_service
from happypulse.services.directory import get_state
from happypulse.services.event_store import EventFilter, EventStore
from happypulse.services.risk_scorer import apply_to_state, build_snapshot, score_risk, snapshots_for_users
from happypulse.utils.dates import day_start, today as utc_today, utcnow
from happypulse.utils.locks import user_locks

logger = logging.getLogger("event_processor")

STREAK_MILESTONES = (7, 14, 30, 60, 100)


# ── Pure rules ────────────────────────────────────────────────────────────────

def validate_mood(mood: Any) -> int:
    if isinstance(mood, bool) or not isinstance(mood, (int, float)):
        raise InvalidMood()
    if isinstance(mood, float):
        if not mood.is_integer():
            raise InvalidMood()
        mood = int(mood)
    if mood < MOOD_MIN or mood > MOOD_MAX:
        raise InvalidMood()
    return mood


def checkin_reward(mood: int) -> int:
    coins = settings.CHECKIN_REWARD_BASE
    if mood >= 4:
        coins += settings.CHECKIN_REWARD_MOOD_BONUS
    return coins


def next_streak(last_check_in: Optional[date], current: int, today: date) -> int:
    """Streak after a check-in on `today`. A gap within the grace window continues it."""
    if last_check_in is None:
        return 1
    gap = (today - last_check_in).days
    if 1 <= gap <= settings.STREAK_GRACE_DAYS:
        return current + 1
    return 1


def effective_streak(state: WellnessState, today: Optional[date] = None) -> int:
    """Streak as observed now: 0 once the last check-in falls outside the grace window."""
    today = today or utc_today()
    last = state.last_check_in_date
    if last is None or (today - last).days > settings.STREAK_GRACE_DAYS:
        return 0
    return state.current_streak


def reading_time(word_count: int) -> int:
    return max(1, math.ceil(word_count / READING_WORDS_PER_MINUTE))


def count_words(body: str) -> int:
    return len((body or "").split())


def validate_answers(questions: List[dict], answers: Dict[str, Any]) -> List[Dict[str, str]]:
    """Per-field errors for a survey submission; empty when the answers are valid."""
    errors = []
    by_id = {str(q.get("id")): q for q in questions or []}
    for qid in answers:
        if qid not in by_id:
            errors.append({"field": f"answers.{qid}", "message": "Unknown question"})

    for qid, q in by_id.items():
        value = answers.get(qid)
        field = f"answers.{qid}"
        if value is None or value == "" or value == []:
            if q.get("required"):
                errors.append({"field": field, "message": "This question is required"})
            continue

        qtype = q.get("type")
        options = q.get("options") or []
        if qtype == "scale":
            scale = q.get("scale") or {}
            lo, hi = scale.get("min", 1), scale.get("max", 5)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append({"field": field, "message": "Expected a number"})
            elif value < lo or value > hi:
                errors.append({"field": field, "message": f"Must be between {lo} and {hi}"})
        elif qtype == "boolean":
            if not isinstance(value, (bool, int)) or (not isinstance(value, bool) and value not in (0, 1)):
                errors.append({"field": field, "message": "Expected true/false"})
        elif qtype == "text":
            if not isinstance(value, str):
                errors.append({"field": field, "message": "Expected text"})
        elif qtype == "multiple_choice":
            if not isinstance(value, str):
                errors.append({"field": field, "message": "Expected a single choice"})
            elif options and value not in options:
                errors.append({"field": field, "message": "Not one of the allowed options"})
        elif qtype == "checkbox":
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                errors.append({"field": field, "message": "Expected a list of choices"})
            elif options and any(v not in options for v in value):
                errors.append({"field": field, "message": "Not one of the allowed options"})
    return errors


# ── Processor ─────────────────────────────────────────────────────────────────

class EventProcessor:
    def __init__(self, db: AsyncSession, queue=None):
        self.db = db
        self.store = EventStore(db)
        self.queue = queue

    def _enqueue(self, name: str, **payload) -> None:
        """Best-effort: a full queue is logged, never surfaced to the caller."""
        if self.queue is None:
            return
        try:
            self.queue.submit(name, **payload)
        except DependencyUnavailable as e:
            logger.error(f"[processor] could not enqueue {name} {payload}: {e.message}")

    async def _refresh_risk(self, state: WellnessState, today: date) -> bool:
        snapshot = await build_snapshot(self.db, state.user_id, today)
        entered_high = apply_to_state(state, score_risk(snapshot))
        state.risk_evaluated_at = utcnow()
        return entered_high

    # ── Check-in ──────────────────────────────────────────────────────────────

    async def record_checkin(
        self,
        user: User,
        mood: Any,
        feedback: Optional[str] = None,
        source: str = "web",
    ) -> Tuple[CheckIn, WellnessState]:
        mood = validate_mood(mood)
        feedback = (feedback or "").strip() or None
        if feedback and len(feedback) > FEEDBACK_MAX_LENGTH:
            raise ValidationFailed.field("feedback", f"Feedback cannot exceed {FEEDBACK_MAX_LENGTH} characters")
        if source not in CHECKIN_SOURCES:
            raise ValidationFailed.field("source", f"Source must be one of {', '.join(CHECKIN_SOURCES)}")

        checkin, state, entered_high = await asyncio.shield(
            self._locked_checkin(user.id, mood, feedback, source)
        )

        logger.info(
            f"[checkin] user {user.id} mood {mood} +{checkin.happy_coins_earned} coins, "
            f"streak {state.current_streak}d, risk {state.risk_level}"
        )
        if feedback:
            self._enqueue("index_event", source_kind="checkin", source_id=checkin.id)
        self._enqueue(
            "notify",
            user_id=user.id,
            type=CHECK_IN_COMPLETED,
            title="Check-in complete",
            message=f"You earned {checkin.happy_coins_earned} Happy Coins. Streak: {state.current_streak} day(s).",
            data={"checkin_id": checkin.id, "happy_coins": checkin.happy_coins_earned,
                  "streak": state.current_streak},
            priority="low",
        )
        if state.current_streak in STREAK_MILESTONES:
            self._enqueue(
                "notify",
                user_id=user.id,
                type=STREAK_MILESTONE,
                title=f"{state.current_streak}-day streak!",
                message=f"You've checked in {state.current_streak} days in a row. Keep it up!",
                data={"streak": state.current_streak},
            )
        self._enqueue("evaluate_achievements", user_id=user.id)
        if entered_high:
            self._enqueue("risk_alert", user_id=user.id)
        return checkin, state

    async def _locked_checkin(self, user_id: int, mood: int, feedback: Optional[str], source: str):
        async with user_locks.hold(user_id):
            today = utc_today()
            state = await get_state(self.db, user_id, for_update=True)
            if await self.store.checkin_for_day(user_id, today) is not None:
                raise AlreadyCheckedIn()

            coins = checkin_reward(mood)
            streak = next_streak(state.last_check_in_date, state.current_streak, today)
            checkin = CheckIn(
                user_id=user_id,
                day=today,
                mood=mood,
                feedback=feedback,
                source=source,
                happy_coins_earned=coins,
                streak_at_check_in=streak,
            )
            await self.store.insert_checkin(checkin)

            state.happy_coins += coins
            state.current_streak = streak
            state.longest_streak = max(state.longest_streak, streak)
            state.last_check_in_date = today
            state.total_check_ins += 1

            moods = await self.store.recent_moods(user_id, settings.AVERAGE_MOOD_SAMPLE)
            state.average_mood = round(sum(moods) / len(moods), 1) if moods else None
            entered_high = await self._refresh_risk(state, today)

            await self.db.commit()
            return checkin, state, entered_high

    # ── Survey response ───────────────────────────────────────────────────────

    async def submit_survey_response(
        self,
        user: User,
        survey_id: int,
        answers: Dict[str, Any],
    ) -> Tuple[SurveyResponse, WellnessState]:
        survey = await self.db.get(Survey, survey_id)
        if survey is None:
            raise NotFound("Survey not found")
        if survey.status != "active":
            raise ValidationFailed.field("survey_id", "This survey is not accepting responses")
        if survey.target_departments and user.department not in survey.target_departments:
            raise Forbidden("This survey is not available for your department")

        answers = {str(k): v for k, v in (answers or {}).items()}
        errors = validate_answers(survey.questions, answers)
        if errors:
            raise ValidationFailed("Validation failed", errors=errors)

        response, state = await asyncio.shield(self._locked_response(user.id, survey, answers))

        logger.info(f"[survey] user {user.id} answered survey {survey.id} +{response.happy_coins_earned} coins")
        if any(q.get("type") == "text" for q in survey.questions or []):
            self._enqueue("index_event", source_kind="survey", source_id=response.id)
        self._enqueue(
            "notify",
            user_id=user.id,
            type=SURVEY_COMPLETED,
            title="Survey completed",
            message=f"Thanks for completing '{survey.title}'"
                    + (f". You earned {response.happy_coins_earned} Happy Coins." if response.happy_coins_earned else "."),
            data={"survey_id": survey.id, "happy_coins": response.happy_coins_earned},
            priority="low",
        )
        self._enqueue("evaluate_achievements", user_id=user.id)
        return response, state

    async def _locked_response(self, user_id: int, survey: Survey, answers: Dict[str, Any]):
        async with user_locks.hold(user_id):
            state = await get_state(self.db, user_id, for_update=True)
            reward = survey.reward_happy_coins or 0
            response = SurveyResponse(
                survey_id=survey.id,
                user_id=user_id,
                answers=answers,
                happy_coins_earned=reward,
                completed_at=utcnow(),
            )
            # The unique (survey_id, user_id) index makes the reward credit-once
            await self.store.insert_survey_response(response)
            state.happy_coins += reward
            await self._refresh_risk(state, utc_today())
            await self.db.commit()
            return response, state

    # ── Journals ──────────────────────────────────────────────────────────────

    @staticmethod
    def _validate_journal(title: str, body: str, mood: Any, category: str, privacy: str, tags) -> int:
        errors = []
        if not title or not title.strip():
            errors.append({"field": "title", "message": "Title is required"})
        elif len(title) > JOURNAL_TITLE_MAX_LENGTH:
            errors.append({"field": "title", "message": f"Title cannot exceed {JOURNAL_TITLE_MAX_LENGTH} characters"})
        if not body or not body.strip():
            errors.append({"field": "content", "message": "Content is required"})
        elif len(body) > JOURNAL_BODY_MAX_LENGTH:
            errors.append({"field": "content", "message": f"Content cannot exceed {JOURNAL_BODY_MAX_LENGTH} characters"})
        if category not in JOURNAL_CATEGORIES:
            errors.append({"field": "category", "message": "Unknown category"})
        if privacy not in JOURNAL_PRIVACY:
            errors.append({"field": "privacy", "message": "Unknown privacy level"})
        if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
            errors.append({"field": "tags", "message": "Tags must be a list of strings"})
        if errors:
            raise ValidationFailed("Validation failed", errors=errors)
        return validate_mood(mood)

    async def create_journal(
        self,
        user: User,
        title: str,
        body: str,
        mood: Any,
        category: str = "personal",
        tags: Optional[List[str]] = None,
        privacy: str = "private",
    ) -> JournalEntry:
        mood = self._validate_journal(title, body, mood, category, privacy, tags)
        words = count_words(body)
        entry = JournalEntry(
            user_id=user.id,
            title=title.strip(),
            body=body,
            mood=mood,
            category=category,
            tags=[t.strip().lower() for t in tags or [] if t.strip()],
            privacy=privacy,
            word_count=words,
            reading_time=reading_time(words),
        )
        await self.store.insert_journal(entry)
        await self.db.commit()

        logger.info(f"[journal] user {user.id} created entry {entry.id} ({words} words)")
        self._enqueue("index_event", source_kind="journal", source_id=entry.id)
        self._enqueue("analyze_journal", journal_id=entry.id)
        return entry

    async def get_own_journal(self, user: User, journal_id: int) -> JournalEntry:
        entry = await self.db.get(JournalEntry, journal_id)
        if entry is None or entry.is_deleted or entry.user_id != user.id:
            raise NotFound("Journal entry not found")
        return entry

    @staticmethod
    def can_edit(entry: JournalEntry) -> bool:
        return utcnow() - entry.created_at <= timedelta(hours=settings.JOURNAL_EDIT_WINDOW_HOURS)

    async def update_journal(self, user: User, journal_id: int, changes: Dict[str, Any]) -> JournalEntry:
        entry = await self.get_own_journal(user, journal_id)
        if not self.can_edit(entry):
            raise ValidationFailed.field(
                "journal",
                f"Journal entries can only be edited within {settings.JOURNAL_EDIT_WINDOW_HOURS} hours of creation",
            )

        title = changes.get("title", entry.title)
        body = changes.get("content", changes.get("body", entry.body))
        mood = changes.get("mood", entry.mood)
        category = changes.get("category", entry.category)
        privacy = changes.get("privacy", entry.privacy)
        tags = changes.get("tags", entry.tags)
        mood = self._validate_journal(title, body, mood, category, privacy, tags)

        content_changed = title.strip() != entry.title or body != entry.body
        entry.title = title.strip()
        entry.body = body
        entry.mood = mood
        entry.category = category
        entry.privacy = privacy
        entry.tags = [t.strip().lower() for t in tags or [] if t.strip()]
        entry.word_count = count_words(body)
        entry.reading_time = reading_time(entry.word_count)
        entry.edit_count += 1
        await self.db.commit()

        if content_changed:
            self._enqueue("index_event", source_kind="journal", source_id=entry.id)
            self._enqueue("analyze_journal", journal_id=entry.id)
        return entry

    async def delete_journal(self, user: User, journal_id: int) -> None:
        entry = await self.get_own_journal(user, journal_id)
        entry.is_deleted = True
        await self.db.commit()
        logger.info(f"[journal] user {user.id} deleted entry {entry.id}")
        self._enqueue("index_event", source_kind="journal", source_id=entry.id)

    # ── Quotes ────────────────────────────────────────────────────────────────

    async def todays_quote(self, user: User) -> DailyQuote:
        today = utc_today()
        quote = quote_service.quote_for(user.id, today)
        row = await self.store.upsert_quote_engagement(user.id, today, quote)
        await self.db.commit()
        return row

    async def engage_quote(
        self,
        user: User,
        quote_row_id: int,
        action: str,
        rating: Optional[int] = None,
        time_spent_seconds: Optional[int] = None,
    ) -> DailyQuote:
        row = await self.db.get(DailyQuote, quote_row_id)
        if row is None or row.user_id != user.id:
            raise NotFound("Quote not found")

        if time_spent_seconds is not None:
            if time_spent_seconds < 0:
                raise ValidationFailed.field("time_spent", "Time spent cannot be negative")
            row.time_spent_seconds += int(time_spent_seconds)

        if action == "view":
            row.viewed = True
            if row.status == "generated":
                row.status = "viewed"
        elif action == "like":
            row.liked = not row.liked
        elif action == "share":
            row.shared = True
        elif action == "feedback":
            if rating is None or isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
                raise ValidationFailed.field("rating", "Rating must be an integer between 1 and 5")
            row.rating = rating
        else:
            raise ValidationFailed.field("action", f"Unknown action '{action}'")
        await self.db.commit()
        return row

    # ── Nightly sweep ─────────────────────────────────────────────────────────

    async def nightly_sweep(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Reset expired streaks for every active user and re-score employees
        with no check-in today.

        `entered_high` lists users that newly entered high risk tonight;
        `alerts_pending` lists every high-risk employee whose HR alert has not
        gone out yet, so an alert lost to a full queue is retried next night.
        """
        today = today or utc_today()
        result = await self.db.execute(
            select(User.id, User.role).where(User.is_active.is_(True)).order_by(User.id)
        )
        roles = {uid: role for uid, role in result.all()}
        checked_in_today = await self.store.distinct_users(
            EventFilter(kinds=["checkin"], start=day_start(today), end=day_start(today + timedelta(days=1)))
        )
        candidates = [uid for uid in roles if uid not in checked_in_today]
        scored = [uid for uid in candidates if roles[uid] == "employee"]
        snapshots = await snapshots_for_users(self.db, scored, today)

        reset = rescored = 0
        entered_high: List[int] = []
        for uid in candidates:
            async with user_locks.hold(uid):
                state = await get_state(self.db, uid, for_update=True)
                if state.current_streak > 0 and effective_streak(state, today) == 0:
                    state.current_streak = 0
                    reset += 1
                if uid in snapshots:
                    if apply_to_state(state, score_risk(snapshots[uid])):
                        entered_high.append(uid)
                    state.risk_evaluated_at = utcnow()
                    rescored += 1
                await self.db.commit()

        result = await self.db.execute(
            select(WellnessState.user_id)
            .join(User, User.id == WellnessState.user_id)
            .where(
                User.is_active.is_(True),
                User.role == "employee",
                WellnessState.risk_level == "high",
                WellnessState.risk_alert_sent.is_(False),
            )
            .order_by(WellnessState.user_id)
        )
        alerts_pending = list(result.scalars().all())

        logger.info(
            f"[sweep] {reset} streaks reset, {rescored} users re-scored, "
            f"{len(entered_high)} entered high risk, {len(alerts_pending)} alerts pending"
        )
        return {
            "streaks_reset": reset,
            "rescored": rescored,
            "entered_high": entered_high,
            "alerts_pending": alerts_pending,
        }

    async def mark_risk_alert_sent(self, user_id: int) -> bool:
        """Flag the one-time high-risk alert. Returns False when it was already sent or no longer applies."""
        async with user_locks.hold(user_id):
            state = await get_state(self.db, user_id, for_update=True)
            if state.risk_level != "high" or state.risk_alert_sent:
                return False
            state.risk_alert_sent = True
            # Caller commits together with the alert rows
            await self.db.flush()
            return True
