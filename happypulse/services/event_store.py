# happypulse/services/event_store.py
"""
Event store interface over the four event kinds.

Writes map store-level uniqueness violations onto caller-facing errors.
Reads are typed: `query_events` runs one query per kind and merges the
results newest-first; `aggregate` builds grouped numeric rollups.
Consumers in services/ read events only through this module.
"""
import functools
import heapq
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence, Set, Union

from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.errors import AlreadyCheckedIn, DuplicateResponse, InternalError, ValidationFailed
from happypulse.models.events import CheckIn, JournalEntry, DailyQuote
from happypulse.models.surveys import SurveyResponse
from happypulse.models.user import User, WellnessState

logger = logging.getLogger("event_store")

EventKind = Literal["checkin", "survey_response", "journal", "quote"]
EVENT_KINDS = ("checkin", "survey_response", "journal", "quote")


# ── Typed payloads ────────────────────────────────────────────────────────────

class CheckInPayload(BaseModel):
    kind: Literal["checkin"] = "checkin"
    day: date
    mood: int
    feedback: Optional[str] = None
    source: str
    happy_coins_earned: int


class SurveyResponsePayload(BaseModel):
    kind: Literal["survey_response"] = "survey_response"
    survey_id: int
    answers: Dict[str, Any]
    happy_coins_earned: int


class JournalPayload(BaseModel):
    kind: Literal["journal"] = "journal"
    title: str
    body: str
    mood: int
    category: str
    privacy: str
    word_count: int
    is_deleted: bool


class QuotePayload(BaseModel):
    kind: Literal["quote"] = "quote"
    quote_id: str
    viewed: bool
    liked: bool
    shared: bool
    time_spent_seconds: int
    rating: Optional[int] = None


EventPayload = Union[CheckInPayload, SurveyResponsePayload, JournalPayload, QuotePayload]


class Event(BaseModel):
    id: int
    user_id: int
    timestamp: datetime
    payload: EventPayload = Field(discriminator="kind")

    @property
    def kind(self) -> str:
        return self.payload.kind


def _to_event(row) -> Event:
    if isinstance(row, CheckIn):
        payload = CheckInPayload(
            day=row.day, mood=row.mood, feedback=row.feedback, source=row.source,
            happy_coins_earned=row.happy_coins_earned,
        )
    elif isinstance(row, SurveyResponse):
        payload = SurveyResponsePayload(
            survey_id=row.survey_id, answers=row.answers or {}, happy_coins_earned=row.happy_coins_earned,
        )
    elif isinstance(row, JournalEntry):
        payload = JournalPayload(
            title=row.title, body=row.body, mood=row.mood, category=row.category,
            privacy=row.privacy, word_count=row.word_count, is_deleted=row.is_deleted,
        )
    else:
        payload = QuotePayload(
            quote_id=row.quote_id, viewed=row.viewed, liked=row.liked, shared=row.shared,
            time_spent_seconds=row.time_spent_seconds, rating=row.rating,
        )
    return Event(id=row.id, user_id=row.user_id, timestamp=row.created_at, payload=payload)


# ── Filters & specs ───────────────────────────────────────────────────────────

@dataclass
class EventFilter:
    user_id: Optional[int] = None
    user_ids: Optional[Sequence[int]] = None
    departments: Optional[Sequence[str]] = None
    roles: Optional[Sequence[str]] = None
    risk_levels: Optional[Sequence[str]] = None
    kinds: Optional[Sequence[str]] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = None
    active_only: bool = False
    include_deleted: bool = False


AGGREGATE_FIELDS = {
    "checkin": {"mood": CheckIn.mood, "happy_coins_earned": CheckIn.happy_coins_earned, "id": CheckIn.id},
    "survey_response": {"happy_coins_earned": SurveyResponse.happy_coins_earned, "id": SurveyResponse.id},
    "journal": {"mood": JournalEntry.mood, "word_count": JournalEntry.word_count, "id": JournalEntry.id},
    "quote": {"rating": DailyQuote.rating, "time_spent_seconds": DailyQuote.time_spent_seconds, "id": DailyQuote.id},
}

_MODELS = {
    "checkin": CheckIn,
    "survey_response": SurveyResponse,
    "journal": JournalEntry,
    "quote": DailyQuote,
}


@dataclass
class AggregateSpec:
    kind: str = "checkin"
    metric: Literal["count", "sum", "avg", "min", "max"] = "count"
    field: str = "id"
    group_by: Literal["none", "user", "department", "day", "mood"] = "none"
    filter: Optional[EventFilter] = None


@dataclass
class AggregateBucket:
    key: Any
    value: Optional[float]
    count: int


# ── Store-level retry ─────────────────────────────────────────────────────────

def retry_once(fn):
    """
    Retry a read once on a store-level error; a second failure is Internal.

    Inside an open unit of work each attempt runs in a savepoint, so a failed
    read never discards the caller's pending writes.
    """
    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        async def attempt():
            if self.db.in_transaction():
                async with self.db.begin_nested():
                    return await fn(self, *args, **kwargs)
            return await fn(self, *args, **kwargs)

        nested = self.db.in_transaction()
        try:
            return await attempt()
        except DBAPIError as e:
            logger.warning(f"[store] {fn.__name__} failed ({e.__class__.__name__}), retrying once")
            if not nested:
                # Nothing of the caller's was pending; clear the failed autobegun transaction
                await self.db.rollback()
            try:
                return await attempt()
            except DBAPIError as e2:
                logger.error(f"[store] {fn.__name__} failed twice: {e2}")
                raise InternalError("Event store unavailable") from e2
    return wrapper


class EventStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Writes ────────────────────────────────────────────────────────────────

    async def _insert(self, row, conflict_exc):
        # Inserts are the first write of their transaction, so a rollback leaves state untouched
        self.db.add(row)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise conflict_exc from e
        return row

    async def insert_checkin(self, row: CheckIn) -> CheckIn:
        return await self._insert(row, AlreadyCheckedIn())

    async def insert_survey_response(self, row: SurveyResponse) -> SurveyResponse:
        return await self._insert(row, DuplicateResponse())

    async def insert_journal(self, row: JournalEntry) -> JournalEntry:
        self.db.add(row)
        await self.db.flush()
        return row

    async def upsert_quote_engagement(self, user_id: int, day: date, defaults: dict) -> DailyQuote:
        result = await self.db.execute(
            select(DailyQuote).where(DailyQuote.user_id == user_id, DailyQuote.date == day)
        )
        row = result.scalar_one_or_none()
        if row is not None:
            return row
        row = DailyQuote(user_id=user_id, date=day, **defaults)
        try:
            return await self._insert(row, ValidationFailed("Quote already generated for today"))
        except ValidationFailed:
            # Lost a race with a concurrent request; the other row wins
            result = await self.db.execute(
                select(DailyQuote).where(DailyQuote.user_id == user_id, DailyQuote.date == day)
            )
            return result.scalar_one()

    # ── Reads ─────────────────────────────────────────────────────────────────

    def _scoped(self, model, flt: EventFilter):
        """Base select for one event kind with the user-scoped filters applied."""
        stmt = select(model)
        needs_user = flt.departments or flt.roles or flt.active_only
        if needs_user:
            stmt = stmt.join(User, User.id == model.user_id)
            if flt.departments:
                stmt = stmt.where(User.department.in_(list(flt.departments)))
            if flt.roles:
                stmt = stmt.where(User.role.in_(list(flt.roles)))
            if flt.active_only:
                stmt = stmt.where(User.is_active.is_(True))
        if flt.risk_levels:
            stmt = stmt.join(WellnessState, WellnessState.user_id == model.user_id).where(
                WellnessState.risk_level.in_(list(flt.risk_levels))
            )
        if flt.user_id is not None:
            stmt = stmt.where(model.user_id == flt.user_id)
        if flt.user_ids is not None:
            stmt = stmt.where(model.user_id.in_(list(flt.user_ids)))
        if flt.start is not None:
            stmt = stmt.where(model.created_at >= flt.start)
        if flt.end is not None:
            stmt = stmt.where(model.created_at <= flt.end)
        if model is JournalEntry and not flt.include_deleted:
            stmt = stmt.where(JournalEntry.is_deleted.is_(False))
        return stmt

    @retry_once
    async def fetch_rows(self, kind: str, flt: EventFilter) -> List[Any]:
        model = _MODELS[kind]
        stmt = self._scoped(model, flt).order_by(model.created_at.desc(), model.id.desc())
        if flt.limit:
            stmt = stmt.limit(flt.limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def query_events(self, flt: Optional[EventFilter] = None) -> AsyncIterator[Event]:
        """
        Typed events ordered by timestamp descending.
        Each kind is queried separately and the sorted streams are merged.
        """
        flt = flt or EventFilter()
        kinds = list(flt.kinds or EVENT_KINDS)
        for k in kinds:
            if k not in _MODELS:
                raise ValidationFailed.field("kinds", f"Unknown event kind '{k}'")
        streams = []
        for k in kinds:
            rows = await self.fetch_rows(k, flt)
            streams.append([_to_event(r) for r in rows])
        merged = heapq.merge(*streams, key=lambda e: (e.timestamp, e.id), reverse=True)
        emitted = 0
        for event in merged:
            if flt.limit and emitted >= flt.limit:
                break
            emitted += 1
            yield event

    @retry_once
    async def aggregate(self, spec: AggregateSpec) -> List[AggregateBucket]:
        model = _MODELS[spec.kind]
        fields = AGGREGATE_FIELDS[spec.kind]
        if spec.field not in fields:
            raise ValidationFailed.field("field", f"Cannot aggregate '{spec.field}' on {spec.kind}")
        column = fields[spec.field]
        if spec.group_by == "mood" and not hasattr(model, "mood"):
            raise ValidationFailed.field("group_by", f"{spec.kind} has no mood")

        flt = spec.filter or EventFilter()
        base = self._scoped(model, flt).subquery()
        # Re-select from the filtered rows so joins used by filters do not double count
        src = base.c
        col = getattr(src, column.key)
        metric = {
            "count": func.count(col),
            "sum": func.sum(col),
            "avg": func.avg(col),
            "min": func.min(col),
            "max": func.max(col),
        }[spec.metric]
        grouped = spec.group_by != "none"
        if not grouped:
            stmt = select(metric, func.count(src.id))
        elif spec.group_by == "department":
            stmt = (
                select(User.department, metric, func.count(src.id))
                .join(User, User.id == src.user_id)
                .group_by(User.department)
            )
        elif spec.group_by == "day" and model is not CheckIn:
            day_key = func.date(src.created_at)
            stmt = select(day_key, metric, func.count(src.id)).group_by(day_key)
        else:
            group_col = src.user_id if spec.group_by == "user" else src[spec.group_by]
            stmt = select(group_col, metric, func.count(src.id)).group_by(group_col)

        result = await self.db.execute(stmt)
        buckets = []
        for row in result.all():
            if not grouped:
                value, count = row
                bucket_key = None
            else:
                bucket_key, value, count = row
                if spec.group_by == "day" and isinstance(bucket_key, str):
                    bucket_key = date.fromisoformat(bucket_key)
            if count == 0 and not grouped:
                value = 0 if spec.metric == "count" else None
            buckets.append(AggregateBucket(
                key=bucket_key,
                value=float(value) if value is not None else None,
                count=int(count or 0),
            ))
        if grouped:
            buckets.sort(key=lambda b: b.key)
        return buckets

    @retry_once
    async def distinct_users(self, flt: Optional[EventFilter] = None) -> Set[int]:
        flt = flt or EventFilter()
        users: Set[int] = set()
        for k in flt.kinds or EVENT_KINDS:
            model = _MODELS[k]
            sub = self._scoped(model, flt).subquery()
            result = await self.db.execute(select(sub.c.user_id).distinct())
            users.update(uid for (uid,) in result.all())
        return users

    @retry_once
    async def recent_moods(self, user_id: int, limit: int) -> List[int]:
        result = await self.db.execute(
            select(CheckIn.mood)
            .where(CheckIn.user_id == user_id)
            .order_by(CheckIn.day.desc())
            .limit(limit)
        )
        return [m for (m,) in result.all()]

    @retry_once
    async def checkin_for_day(self, user_id: int, day: date) -> Optional[CheckIn]:
        result = await self.db.execute(
            select(CheckIn).where(CheckIn.user_id == user_id, CheckIn.day == day)
        )
        return result.scalar_one_or_none()
