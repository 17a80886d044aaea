from datetime import timedelta

import pytest

from happypulse.core.errors import AlreadyCheckedIn, DuplicateResponse
from happypulse.models.events import CheckIn, JournalEntry
from happypulse.models.surveys import Survey, SurveyResponse
from happypulse.services.event_store import AggregateSpec, EventFilter, EventStore
from happypulse.utils.dates import day_start, today

from tests.helpers import at


async def test_duplicate_checkin_surfaces_as_already_checked_in(db, make_user):
    user_id = (await make_user()).id
    store = EventStore(db)
    await store.insert_checkin(CheckIn(user_id=user_id, day=today(), mood=4, source="web"))
    await db.commit()

    with pytest.raises(AlreadyCheckedIn):
        await store.insert_checkin(CheckIn(user_id=user_id, day=today(), mood=2, source="web"))
    count = await store.aggregate(AggregateSpec(kind="checkin", filter=EventFilter(user_id=user_id)))
    assert count[0].count == 1


async def test_duplicate_survey_response(db, make_user):
    user = await make_user()
    survey = Survey(title="Pulse", type="pulse", status="active", questions=[])
    db.add(survey)
    await db.commit()
    store = EventStore(db)
    await store.insert_survey_response(SurveyResponse(survey_id=survey.id, user_id=user.id, answers={}))
    await db.commit()

    with pytest.raises(DuplicateResponse):
        await store.insert_survey_response(SurveyResponse(survey_id=survey.id, user_id=user.id, answers={}))


async def test_query_events_merges_kinds_newest_first(db, make_user, add_checkin):
    user = await make_user()
    now = today()
    await add_checkin(user, now - timedelta(days=2), 3)
    await add_checkin(user, now, 4)
    db.add(JournalEntry(
        user_id=user.id, title="Mid", body="Middle entry", mood=3,
        created_at=at(now - timedelta(days=1)),
    ))
    await db.commit()

    events = [e async for e in EventStore(db).query_events(EventFilter(user_id=user.id))]
    assert [e.kind for e in events] == ["checkin", "journal", "checkin"]
    assert events[0].payload.mood == 4
    timestamps = [e.timestamp for e in events]
    assert timestamps == sorted(timestamps, reverse=True)

    limited = [e async for e in EventStore(db).query_events(EventFilter(user_id=user.id, limit=2))]
    assert len(limited) == 2


async def test_deleted_journals_are_hidden(db, make_user):
    user = await make_user()
    db.add(JournalEntry(user_id=user.id, title="Gone", body="Deleted entry", mood=3, is_deleted=True))
    await db.commit()
    store = EventStore(db)
    assert await store.fetch_rows("journal", EventFilter(user_id=user.id)) == []
    assert len(await store.fetch_rows("journal", EventFilter(user_id=user.id, include_deleted=True))) == 1


async def test_aggregate_grouping(db, make_user, add_checkin):
    eng = await make_user("Engineering")
    sales = await make_user("Sales")
    now = today()
    await add_checkin(eng, now, 5)
    await add_checkin(eng, now - timedelta(days=1), 3)
    await add_checkin(sales, now, 1)
    store = EventStore(db)

    overall = await store.aggregate(AggregateSpec(kind="checkin", metric="avg", field="mood"))
    assert overall[0].value == 3.0
    assert overall[0].count == 3

    by_dept = await store.aggregate(AggregateSpec(kind="checkin", metric="avg", field="mood", group_by="department"))
    assert {(b.key, b.value, b.count) for b in by_dept} == {("Engineering", 4.0, 2), ("Sales", 1.0, 1)}

    by_day = await store.aggregate(AggregateSpec(kind="checkin", group_by="day"))
    assert [(b.key, b.count) for b in by_day] == [(now - timedelta(days=1), 1), (now, 2)]

    by_mood = await store.aggregate(AggregateSpec(
        kind="checkin", group_by="mood", filter=EventFilter(departments=["Engineering"]),
    ))
    assert [(b.key, b.count) for b in by_mood] == [(3, 1), (5, 1)]


async def test_aggregate_empty_window(db, make_user):
    await make_user()
    store = EventStore(db)
    flt = EventFilter(start=day_start(today()), end=day_start(today() + timedelta(days=1)))
    count = await store.aggregate(AggregateSpec(kind="checkin", filter=flt))
    avg = await store.aggregate(AggregateSpec(kind="checkin", metric="avg", field="mood", filter=flt))
    assert count[0].count == 0 and count[0].value == 0
    assert avg[0].value is None


async def test_distinct_users_respects_role_and_activity(db, make_user, add_checkin):
    employee = await make_user()
    hr = await make_user(role="hr")
    gone = await make_user()
    gone.is_active = False
    await db.commit()
    for u in (employee, hr, gone):
        await add_checkin(u, today(), 3)

    users = await EventStore(db).distinct_users(
        EventFilter(kinds=["checkin"], roles=["employee"], active_only=True)
    )
    assert users == {employee.id}
