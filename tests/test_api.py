from datetime import timedelta

from happypulse.models.surveys import Survey
from happypulse.services import quote_service
from happypulse.services.directory import get_state
from happypulse.utils.dates import today

from tests.helpers import auth_headers


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    jobs = await client.get("/api/health/jobs")
    assert set(jobs.json()["data"]["scheduler"]) == {"streak_sweep", "quote_archival", "pulse_materialization"}


# ── Check-ins ─────────────────────────────────────────────────────────────────

async def test_first_checkin_then_duplicate(client, make_user, queue):
    user = await make_user()
    headers = auth_headers(user)

    resp = await client.post("/api/checkins", json={"mood": 4}, headers=headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    wellness = body["data"]["wellness"]
    assert wellness["happy_coins"] == 75
    assert wellness["current_streak"] == 1
    assert wellness["longest_streak"] == 1
    assert wellness["last_check_in_date"] == today().isoformat()
    assert wellness["risk_level"] == "medium"

    again = await client.post("/api/checkins", json={"mood": 3}, headers=headers)
    assert again.status_code == 409
    assert again.json() == {
        "success": False, "message": "You have already checked in today", "code": "AlreadyCheckedIn",
    }

    me = await client.get("/api/users/me", headers=headers)
    assert me.json()["data"]["wellness"]["happy_coins"] == 75

    await queue.drain()
    me = await client.get("/api/users/me", headers=headers)
    assert me.json()["data"]["achievements"] == ["first_steps"]
    notes = await client.get("/api/users/me/notifications", headers=headers)
    assert {n["type"] for n in notes.json()["data"]} == {"checkin_completed", "achievement_earned"}


async def test_invalid_mood_envelope(client, make_user):
    user = await make_user()
    resp = await client.post("/api/checkins", json={"mood": 7}, headers=auth_headers(user))
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "InvalidMood"


async def test_request_validation_envelope(client, make_user):
    user = await make_user()
    resp = await client.get("/api/checkins/trend?days=0", headers=auth_headers(user))
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "Validation"
    assert body["errors"][0]["field"] == "days"


async def test_trend_is_zero_filled(client, make_user, add_checkin):
    user = await make_user()
    await add_checkin(user, today() - timedelta(days=1), 2)
    await add_checkin(user, today(), 4)

    resp = await client.get("/api/checkins/trend?days=3", headers=auth_headers(user))
    data = resp.json()["data"]
    assert [d["mood"] for d in data["trend"]] == [None, 2, 4]
    assert data["average_mood"] == 3.0

    listed = await client.get("/api/checkins", headers=auth_headers(user))
    assert [c["mood"] for c in listed.json()["data"]] == [4, 2]
    assert listed.json()["pagination"]["total"] == 2


# ── Auth ──────────────────────────────────────────────────────────────────────

async def test_missing_and_bad_tokens(client):
    resp = await client.get("/api/users/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == "Unauthenticated"

    resp = await client.get("/api/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


async def test_analytics_require_hr_or_admin(client, make_user):
    employee = await make_user()
    resp = await client.get("/api/analytics/company-overview", headers=auth_headers(employee))
    assert resp.status_code == 403
    assert resp.json()["code"] == "Forbidden"

    admin = await make_user("HR", role="admin")
    resp = await client.get("/api/analytics/company-overview", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["overview"]["total_employees"] == 1


async def test_analytics_errors_over_http(client, make_user):
    hr = await make_user("HR", role="hr")
    headers = auth_headers(hr)

    resp = await client.get("/api/analytics/department/Legal", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "Validation"

    resp = await client.get(
        "/api/analytics/sentiment?start_date=2020-01-01T00:00:00&end_date=2022-01-01T00:00:00",
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "WindowTooLarge"

    resp = await client.get("/api/word-analytics/word-cloud?from=2024-01-01&to=2024-03-01", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["words"] == []

    resp = await client.post("/api/word-analytics/process-existing", headers=headers)
    assert resp.status_code == 403


# ── Journals, surveys, quotes ─────────────────────────────────────────────────

async def test_journal_endpoints(client, make_user):
    user = await make_user()
    headers = auth_headers(user)
    resp = await client.post("/api/journals", json={
        "title": "Friday", "content": "Wrapped up the release with the team", "mood": 4, "tags": ["Work"],
    }, headers=headers)
    assert resp.status_code == 201
    entry = resp.json()["data"]
    assert entry["content"] == "Wrapped up the release with the team"
    assert entry["tags"] == ["work"]
    assert entry["can_edit"] is True

    other = await make_user()
    resp = await client.get(f"/api/journals/{entry['id']}", headers=auth_headers(other))
    assert resp.status_code == 404

    resp = await client.put(f"/api/journals/{entry['id']}", json={"mood": 9}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "InvalidMood"

    stats = await client.get("/api/journals/stats", headers=headers)
    assert stats.json()["data"]["total_entries"] == 1

    resp = await client.delete(f"/api/journals/{entry['id']}", headers=headers)
    assert resp.status_code == 200
    assert (await client.get("/api/journals", headers=headers)).json()["data"] == []


async def test_survey_submission_is_rewarded_once(client, db, make_user):
    user = await make_user()
    user_id = user.id
    survey = Survey(
        title="Weekly Pulse", type="pulse", status="active",
        questions=quote_service.pulse_questions(), reward_happy_coins=75,
    )
    db.add(survey)
    await db.commit()
    survey_id = survey.id
    headers = auth_headers(user)

    active = await client.get("/api/surveys/active", headers=headers)
    assert [(s["id"], s["responded"]) for s in active.json()["data"]] == [(survey_id, False)]

    answers = {"answers": {"enps": 10, "workload": 4, "supported": True}}
    resp = await client.post(f"/api/surveys/{survey_id}/responses", json=answers, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["data"]["happy_coins"] == 75

    resp = await client.post(f"/api/surveys/{survey_id}/responses", json=answers, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "DuplicateResponse"

    db.expire_all()
    state = await get_state(db, user_id)
    assert state.happy_coins == 75

    bad = await client.post(f"/api/surveys/{survey_id}/responses", json={"answers": {}}, headers=headers)
    assert bad.status_code == 400
    assert bad.json()["errors"][0]["field"] == "answers.enps"


async def test_quote_of_the_day(client, make_user):
    user = await make_user()
    headers = auth_headers(user)
    quote = (await client.get("/api/quotes/today", headers=headers)).json()["data"]
    assert quote["status"] == "generated"

    resp = await client.post(f"/api/quotes/{quote['id']}/view", json={"time_spent": 5}, headers=headers)
    assert resp.json()["data"]["status"] == "viewed"

    resp = await client.post(f"/api/quotes/{quote['id']}/dance", headers=headers)
    assert resp.status_code == 400

    history = await client.get("/api/quotes/history", headers=headers)
    assert [q["id"] for q in history.json()["data"]] == [quote["id"]]
