from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from happypulse.core.constants import CHECK_IN_COMPLETED, SURVEY_COMPLETED
from happypulse.core.errors import (
    AlreadyCheckedIn, DuplicateResponse, Forbidden, InternalError, InvalidMood, NotFound, ValidationFailed,
)
from happypulse.models.events import CheckIn
from happypulse.models.surveys import Survey
from happypulse.models.user import Notification, UserAchievement
from happypulse.models.word_frequency import WordFrequencyRow
from happypulse.services import quote_service
from happypulse.services.directory import get_state
from happypulse.services.event_store import EventStore, retry_once
from happypulse.services.event_processor import (
    EventProcessor, checkin_reward, effective_streak, next_streak, reading_time, validate_answers,
)
from happypulse.utils.dates import today, utcnow


# ── Pure rules ────────────────────────────────────────────────────────────────

def test_reward_rules():
    assert checkin_reward(1) == 50
    assert checkin_reward(3) == 50
    assert checkin_reward(4) == 75
    assert checkin_reward(5) == 75


def test_streak_rules():
    now = today()
    assert next_streak(None, 0, now) == 1
    assert next_streak(now - timedelta(days=1), 6, now) == 7
    assert next_streak(now - timedelta(days=2), 6, now) == 1
    assert next_streak(now - timedelta(days=3), 10, now) == 1


def test_reading_time_has_a_floor():
    assert reading_time(0) == 1
    assert reading_time(200) == 1
    assert reading_time(201) == 2


def test_answer_validation_reports_each_field():
    errors = validate_answers(quote_service.pulse_questions(), {"enps": 11, "supported": "yes", "extra": 1})
    fields = {e["field"] for e in errors}
    assert fields == {"answers.enps", "answers.workload", "answers.supported", "answers.extra"}


# ── Check-ins ─────────────────────────────────────────────────────────────────

async def test_first_checkin(db, make_user, queue):
    user = await make_user()
    checkin, state = await EventProcessor(db, queue).record_checkin(user, 4)

    assert checkin.happy_coins_earned == 75
    assert state.happy_coins == 75
    assert state.current_streak == 1
    assert state.longest_streak == 1
    assert state.last_check_in_date == today()
    assert state.average_mood == 4.0
    assert state.risk_level == "medium"
    assert [job.name for job in queue._pending] == ["notify", "evaluate_achievements"]


async def test_same_day_retry_leaves_state_untouched(db, make_user, queue):
    user = await make_user()
    user_id = user.id
    processor = EventProcessor(db, queue)
    await processor.record_checkin(user, 4)

    with pytest.raises(AlreadyCheckedIn):
        await processor.record_checkin(user, 3)

    state = await get_state(db, user_id)
    assert state.happy_coins == 75
    assert state.total_check_ins == 1
    rows = (await db.execute(select(CheckIn).where(CheckIn.user_id == user_id))).scalars().all()
    assert len(rows) == 1


async def test_streak_continuation(db, make_user, add_checkin):
    user = await make_user()
    await add_checkin(user, today() - timedelta(days=1), 4)
    state = await get_state(db, user.id)
    state.last_check_in_date = today() - timedelta(days=1)
    state.current_streak = 6
    state.longest_streak = 6
    state.happy_coins = 300
    await db.commit()

    _, state = await EventProcessor(db).record_checkin(user, 5)
    assert state.current_streak == 7
    assert state.longest_streak == 7
    assert state.happy_coins == 375


async def test_streak_break(db, make_user):
    user = await make_user()
    state = await get_state(db, user.id)
    state.last_check_in_date = today() - timedelta(days=3)
    state.current_streak = 10
    state.longest_streak = 10
    await db.commit()

    _, state = await EventProcessor(db).record_checkin(user, 3)
    assert state.current_streak == 1
    assert state.longest_streak == 10
    assert state.happy_coins == 50


def _failing_moods(monkeypatch, failures):
    """Make EventStore.recent_moods raise a store-level error `failures` times."""
    original = EventStore.recent_moods.__wrapped__
    calls = {"n": 0}

    async def recent_moods(self, user_id, limit):
        calls["n"] += 1
        if calls["n"] <= failures:
            raise OperationalError("SELECT mood FROM check_ins", {}, Exception("database is locked"))
        return await original(self, user_id, limit)

    monkeypatch.setattr(EventStore, "recent_moods", retry_once(recent_moods))
    return calls


async def test_transient_read_error_mid_checkin_is_retried(db, make_user, monkeypatch):
    user = await make_user()
    user_id = user.id
    calls = _failing_moods(monkeypatch, failures=1)

    checkin, state = await EventProcessor(db).record_checkin(user, 4)
    assert calls["n"] == 2
    assert state.happy_coins == 75
    assert state.current_streak == 1
    assert state.average_mood == 4.0
    checkin_id = checkin.id

    db.expire_all()
    rows = (await db.execute(select(CheckIn).where(CheckIn.user_id == user_id))).scalars().all()
    assert [r.id for r in rows] == [checkin_id]
    assert (await get_state(db, user_id)).happy_coins == 75


async def test_second_read_error_mid_checkin_is_internal(db, make_user, monkeypatch):
    user = await make_user()
    user_id = user.id
    _failing_moods(monkeypatch, failures=2)

    with pytest.raises(InternalError):
        await EventProcessor(db).record_checkin(user, 4)
    await db.rollback()

    rows = (await db.execute(select(CheckIn).where(CheckIn.user_id == user_id))).scalars().all()
    assert rows == []
    assert (await get_state(db, user_id)).happy_coins == 0


async def test_effective_streak_reads_zero_after_gap(db, make_user):
    user = await make_user()
    state = await get_state(db, user.id)
    state.last_check_in_date = today() - timedelta(days=2)
    state.current_streak = 4
    assert effective_streak(state) == 0
    state.last_check_in_date = today() - timedelta(days=1)
    assert effective_streak(state) == 4


@pytest.mark.parametrize("mood", [0, 6, 3.5, "4", None, True])
async def test_invalid_mood(db, make_user, mood):
    user = await make_user()
    with pytest.raises(InvalidMood):
        await EventProcessor(db).record_checkin(user, mood)


async def test_feedback_too_long(db, make_user):
    user = await make_user()
    with pytest.raises(ValidationFailed):
        await EventProcessor(db).record_checkin(user, 3, feedback="x" * 501)


async def test_post_commit_work_runs_after_drain(db, index_db, make_user, queue):
    user = await make_user()
    user_id = user.id
    await EventProcessor(db, queue).record_checkin(
        user, 2, feedback="Feeling stressed and overwhelmed by the deadline pressure"
    )
    assert [job.name for job in queue._pending][0] == "index_event"

    await queue.drain()
    assert queue.dead_letters == []

    row = (await index_db.execute(select(WordFrequencyRow))).scalar_one()
    assert row.source_kind == "checkin"
    assert row.weight == 0.5
    assert row.department == "Engineering"

    types = (await db.execute(
        select(Notification.type).where(Notification.user_id == user_id)
    )).scalars().all()
    assert CHECK_IN_COMPLETED in types
    badges = (await db.execute(
        select(UserAchievement.achievement_key).where(UserAchievement.user_id == user_id)
    )).scalars().all()
    assert "first_steps" in badges


# ── Surveys ───────────────────────────────────────────────────────────────────

async def _pulse(db, **overrides) -> Survey:
    survey = Survey(
        title="Weekly Pulse", type="pulse", status="active",
        questions=quote_service.pulse_questions(), reward_happy_coins=75,
    )
    for key, value in overrides.items():
        setattr(survey, key, value)
    db.add(survey)
    await db.commit()
    return survey


async def test_survey_reward_is_credited_once(db, make_user, queue):
    user = await make_user()
    user_id = user.id
    survey = await _pulse(db)
    survey_id = survey.id
    answers = {"enps": 9, "workload": 3, "comments": "The team was really supportive this week"}

    response, state = await EventProcessor(db, queue).submit_survey_response(user, survey_id, answers)
    assert response.happy_coins_earned == 75
    assert state.happy_coins == 75
    assert "index_event" in [job.name for job in queue._pending]

    with pytest.raises(DuplicateResponse):
        await EventProcessor(db, queue).submit_survey_response(user, survey_id, answers)
    state = await get_state(db, user_id)
    assert state.happy_coins == 75

    await queue.drain()
    types = (await db.execute(
        select(Notification.type).where(Notification.user_id == user_id)
    )).scalars().all()
    assert SURVEY_COMPLETED in types


async def test_survey_guards(db, make_user):
    user = await make_user("Sales")
    processor = EventProcessor(db)
    with pytest.raises(NotFound):
        await processor.submit_survey_response(user, 999, {})

    closed = await _pulse(db, status="closed")
    with pytest.raises(ValidationFailed):
        await processor.submit_survey_response(user, closed.id, {"enps": 9, "workload": 3})

    targeted = await _pulse(db, target_departments=["Engineering"])
    with pytest.raises(Forbidden):
        await processor.submit_survey_response(user, targeted.id, {"enps": 9, "workload": 3})

    open_survey = await _pulse(db)
    with pytest.raises(ValidationFailed) as exc:
        await processor.submit_survey_response(user, open_survey.id, {"enps": 9})
    assert exc.value.errors == [{"field": "answers.workload", "message": "This question is required"}]


# ── Journals ──────────────────────────────────────────────────────────────────

async def test_journal_lifecycle(db, make_user, queue):
    user = await make_user()
    processor = EventProcessor(db, queue)
    entry = await processor.create_journal(user, "Monday", "A calm and productive start to the week", 4)
    assert entry.word_count == 8
    assert entry.reading_time == 1
    assert [job.name for job in queue._pending] == ["index_event", "analyze_journal"]

    updated = await processor.update_journal(user, entry.id, {"content": "Actually quite stressful"})
    assert updated.edit_count == 1
    assert updated.body == "Actually quite stressful"

    await processor.delete_journal(user, entry.id)
    with pytest.raises(NotFound):
        await processor.get_own_journal(user, entry.id)


async def test_journal_edit_window(db, make_user):
    user = await make_user()
    processor = EventProcessor(db)
    entry = await processor.create_journal(user, "Old", "Written a while ago", 3)
    entry.created_at = utcnow() - timedelta(hours=25)
    await db.commit()

    with pytest.raises(ValidationFailed):
        await processor.update_journal(user, entry.id, {"title": "Rewritten"})


async def test_journals_are_private_to_their_author(db, make_user):
    author = await make_user()
    other = await make_user()
    entry = await EventProcessor(db).create_journal(author, "Mine", "Only for me to read", 3)
    with pytest.raises(NotFound):
        await EventProcessor(db).get_own_journal(other, entry.id)


# ── Quotes ────────────────────────────────────────────────────────────────────

async def test_todays_quote_is_stable_and_engagement_updates(db, make_user):
    user = await make_user()
    processor = EventProcessor(db)
    first = await processor.todays_quote(user)
    second = await processor.todays_quote(user)
    assert first.id == second.id
    assert first.quote_id == quote_service.quote_for(user.id, today())["quote_id"]

    row = await processor.engage_quote(user, first.id, "view", time_spent_seconds=12)
    assert row.viewed and row.status == "viewed" and row.time_spent_seconds == 12
    row = await processor.engage_quote(user, first.id, "like")
    assert row.liked
    row = await processor.engage_quote(user, first.id, "like")
    assert not row.liked
    row = await processor.engage_quote(user, first.id, "feedback", rating=5)
    assert row.rating == 5
    with pytest.raises(ValidationFailed):
        await processor.engage_quote(user, first.id, "feedback", rating=6)


# ── Nightly sweep ─────────────────────────────────────────────────────────────

async def test_nightly_sweep_resets_expired_streaks_and_flags_high_risk(db, make_user):
    user = await make_user()
    user_id = user.id
    state = await get_state(db, user_id)
    state.last_check_in_date = today() - timedelta(days=20)
    state.current_streak = 5
    state.longest_streak = 5
    await db.commit()

    result = await EventProcessor(db).nightly_sweep()
    assert result["streaks_reset"] == 1
    assert result["entered_high"] == [user_id]

    state = await get_state(db, user_id)
    assert state.current_streak == 0
    assert state.longest_streak == 5
    assert state.risk_level == "high"

    again = await EventProcessor(db).nightly_sweep()
    assert again["streaks_reset"] == 0
    assert again["entered_high"] == []


async def test_nightly_sweep_resets_streaks_for_every_role(db, make_user):
    manager = await make_user(role="manager")
    manager_id = manager.id
    state = await get_state(db, manager_id)
    state.last_check_in_date = today() - timedelta(days=5)
    state.current_streak = 4
    state.longest_streak = 4
    await db.commit()

    result = await EventProcessor(db).nightly_sweep()
    assert result["streaks_reset"] == 1
    # Only employees are risk-scored
    assert result["rescored"] == 0
    assert result["alerts_pending"] == []

    db.expire_all()
    state = await get_state(db, manager_id)
    assert state.current_streak == 0
    assert state.longest_streak == 4
    assert state.risk_level != "high"


async def test_risk_alert_flag_is_set_once(db, make_user):
    user = await make_user()
    user_id = user.id
    state = await get_state(db, user_id)
    state.risk_level = "high"
    await db.commit()

    processor = EventProcessor(db)
    assert await processor.mark_risk_alert_sent(user_id) is True
    await db.commit()
    assert await processor.mark_risk_alert_sent(user_id) is False
