from datetime import timedelta

import pytest

from happypulse.core.errors import ValidationFailed, WindowTooLarge
from happypulse.models.events import JournalEntry
from happypulse.models.surveys import Survey, SurveyResponse
from happypulse.services import analytics, quote_service
from happypulse.services.directory import get_state
from happypulse.utils.dates import today, utcnow

from tests.helpers import at, auth_headers


async def _risk_cohort(make_user, add_checkin):
    """A is engaged, B is patchy and low, C has been silent for 20 days."""
    a = await make_user("Engineering")
    b = await make_user("Engineering")
    c = await make_user("Sales")
    now = today()
    for i, mood in enumerate([5, 5, 5, 5, 4, 4, 4]):
        await add_checkin(a, now - timedelta(days=i), mood)
    await add_checkin(b, now, 2)
    await add_checkin(b, now - timedelta(days=2), 3)
    await add_checkin(c, now - timedelta(days=20), 3)
    return a, b, c


# ── Risk assessment ───────────────────────────────────────────────────────────

async def test_risk_cohort(db, make_user, add_checkin):
    a, b, c = await _risk_cohort(make_user, add_checkin)

    result = await analytics.risk_assessment(db)
    levels = {e["user_id"]: e["risk_level"] for e in result["employees"]}
    assert levels == {a.id: "low", b.id: "medium", c.id: "high"}
    assert [e["user_id"] for e in result["employees"]] == [c.id, b.id, a.id]

    high = await analytics.risk_assessment(db, risk_level="high")
    assert [e["user_id"] for e in high["employees"]] == [c.id]
    assert high["summary"]["by_risk_level"] == {"low": 0, "medium": 0, "high": 1}
    assert high["summary"]["total_assessed"] == 3
    assert high["employees"][0]["recent_activity"]["days_since_last_check_in"] == 20


async def test_risk_cohort_over_http(client, db, make_user, add_checkin):
    _, _, c = await _risk_cohort(make_user, add_checkin)
    hr = await make_user("HR", role="hr")

    resp = await client.get("/api/analytics/risk-assessment?riskLevel=high", headers=auth_headers(hr))
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert [e["user_id"] for e in body["data"]["employees"]] == [c.id]
    assert body["data"]["summary"]["by_risk_level"] == {"low": 0, "medium": 0, "high": 1}


async def test_risk_assessment_rejects_unknown_level(db):
    with pytest.raises(ValidationFailed):
        await analytics.risk_assessment(db, risk_level="critical")


def test_risk_recommendations():
    recs = analytics.risk_recommendations(
        {"low": 0, "medium": 2, "high": 6},
        {"Sales": 3, "HR": 2},
        [],
    )
    assert [r["priority"] for r in recs] == ["urgent", "high"]
    assert "Sales" in recs[1]["description"] and "HR" not in recs[1]["description"]


# ── Empty windows ─────────────────────────────────────────────────────────────

async def test_rollups_are_well_formed_without_data(db):
    overview = await analytics.company_overview(db)
    assert overview["overview"]["total_employees"] == 0
    assert overview["overview"]["engagement_rate"] == 0
    assert overview["overview"]["average_mood"] is None
    assert overview["mood_distribution"] == {"1": 0, "2": 0, "3": 0, "4": 0, "5": 0}
    assert overview["departments"] == []

    dept = await analytics.department_analytics(db, "Sales", include_individuals=True)
    assert dept["overview"]["employee_count"] == 0
    assert dept["risk_distribution"] == {"low": 0, "medium": 0, "high": 0}
    assert dept["mood_trend"] == []
    assert dept["employees"] == []

    risk = await analytics.risk_assessment(db)
    assert risk["summary"]["total_assessed"] == 0
    assert risk["recommendations"] == []

    engagement = await analytics.engagement_metrics(db, period_days=7)
    assert len(engagement["daily"]) == 7
    assert all(d["active_users"] == 0 for d in engagement["daily"])
    assert engagement["summary"]["average_mood"] is None

    enps = await analytics.enps(db)
    assert enps["enps"]["category"] == "No Data"
    assert enps["department_breakdown"] == [] and enps["trend"] == []

    sentiment = await analytics.sentiment(db)
    assert sentiment["summary"]["overall_sentiment"] == "neutral"
    assert sentiment["sentiment_distribution"]["negative"] == {"count": 0, "percentage": 0}

    dashboard = await analytics.dashboard(db)
    assert dashboard["key_metrics"]["total_employees"] == 0
    assert dashboard["insights"]["priority_actions"] == []

    demo = await analytics.demographics(db)
    assert demo["summary"]["total_employees"] == 0
    assert demo["age_distribution"] == []


async def test_window_limits(db):
    now = utcnow()
    with pytest.raises(WindowTooLarge):
        await analytics.company_overview(db, start=now - timedelta(days=400), end=now)
    with pytest.raises(ValidationFailed):
        await analytics.company_overview(db, start=now, end=now - timedelta(days=1))
    with pytest.raises(WindowTooLarge):
        await analytics.engagement_metrics(db, period_days=400)


async def test_unknown_department(db):
    with pytest.raises(ValidationFailed):
        await analytics.department_analytics(db, "Legal")


# ── Overview & departments ────────────────────────────────────────────────────

async def test_company_overview_counts_employees_only(db, make_user, add_checkin):
    e1 = await make_user("Engineering")
    await make_user("Engineering")
    s1 = await make_user("Sales")
    hr = await make_user("HR", role="hr")
    for u, mood in ((e1, 5), (s1, 2), (hr, 1)):
        await add_checkin(u, today(), mood)

    result = await analytics.company_overview(db)
    overview = result["overview"]
    assert overview["total_employees"] == 3
    assert overview["active_employees"] == 2
    assert overview["engagement_rate"] == 66.7
    assert overview["total_check_ins"] == 2
    assert overview["average_mood"] == 3.5
    assert [d["department"] for d in result["departments"]] == ["Engineering", "Sales"]
    assert result["departments"][0]["active_employees"] == 1


async def test_department_attention_list(db, make_user, add_checkin):
    quiet = await make_user("Sales")
    low = await make_user("Sales")
    fine = await make_user("Sales")
    await add_checkin(low, today(), 1)
    await add_checkin(fine, today(), 5)
    state = await get_state(db, quiet.id)
    state.risk_level = "high"
    state.risk_score = 0.85
    await db.commit()

    result = await analytics.department_analytics(db, "Sales", include_individuals=True)
    attention = result["employees_needing_attention"]
    assert [a["user_id"] for a in attention] == [quiet.id, low.id]
    assert attention[0]["reasons"] == ["High risk level", "No check-ins in period"]
    assert attention[1]["reasons"] == ["Low average mood"]
    assert [e["user_id"] for e in result["employees"]] == [low.id, fine.id, quiet.id]
    assert result["mood_trend"] == [{"date": today().isoformat(), "average_mood": 3.0, "check_ins": 2}]


async def test_engagement_buckets(db, make_user, add_checkin):
    a = await make_user()
    await make_user()
    state = await get_state(db, a.id)
    state.current_streak = 9
    state.last_check_in_date = today()
    state.happy_coins = 600
    await db.commit()
    await add_checkin(a, today(), 4)

    result = await analytics.engagement_metrics(db, period_days=3)
    assert result["streak_distribution"] == {"1-7": 0, "8-14": 1, "15-30": 0, "30+": 0}
    assert result["summary"]["employees_without_streak"] == 1
    coins = result["happy_coins_distribution"]
    assert coins["501-1000"] == {"employee_count": 1, "total_coins": 600, "average_coins": 600.0}
    assert coins["0-100"]["employee_count"] == 1
    assert result["daily"][-1] == {
        "date": today().isoformat(), "active_users": 1, "total_check_ins": 1,
        "average_mood": 4.0, "engagement_rate": 50.0,
    }


# ── eNPS & sentiment ──────────────────────────────────────────────────────────

async def test_enps_rollup_by_department(db, make_user):
    survey = Survey(title="Pulse", type="pulse", status="active", questions=quote_service.pulse_questions())
    db.add(survey)
    await db.commit()
    for department, score in (("Engineering", 10), ("Engineering", 9), ("Sales", 3)):
        user = await make_user(department)
        db.add(SurveyResponse(
            survey_id=survey.id, user_id=user.id, answers={"enps": score, "workload": 3},
            created_at=at(today()),
        ))
    await db.commit()

    result = await analytics.enps(db)
    assert result["enps"]["total_responses"] == 3
    assert result["enps"]["score"] == 33
    assert [d["department"] for d in result["department_breakdown"]] == ["Engineering", "Sales"]
    assert result["department_breakdown"][0]["score"] == 100
    assert result["surveys_analyzed"] == 1
    assert result["trend"][0]["month"] == today().strftime("%Y-%m")


async def test_sentiment_never_excerpts_private_journals(db, make_user, add_checkin):
    user = await make_user("Finance")
    db.add(JournalEntry(
        user_id=user.id, title="Private", body="Awful terrible week, exhausted", mood=1,
        privacy="private", created_at=at(today()),
    ))
    db.add(JournalEntry(
        user_id=user.id, title="Shared", body="Great supportive team", mood=5,
        privacy="team_share", created_at=at(today()),
    ))
    await db.commit()
    await add_checkin(user, today(), 2, feedback="Stressed about the budget deadline")

    result = await analytics.sentiment(db)
    assert result["summary"]["total_responses"] == 3
    assert result["summary"]["by_source"] == {"journal": 2, "survey": 0, "checkin": 1}
    excerpts = [r["response"] for r in result["insights"]["most_negative_responses"]]
    excerpts += [r["response"] for r in result["insights"]["most_positive_responses"]]
    assert not any("Awful" in text for text in excerpts)
    assert result["detailed_distribution"]["very_negative"] == 2
    assert result["summary"]["overall_sentiment"] == "negative"
    assert result["department_sentiment"][0]["department"] == "Finance"


def test_sentiment_labels():
    assert analytics.overall_sentiment({"positive": 7, "neutral": 2, "negative": 1}) == "positive"
    assert analytics.overall_sentiment({"positive": 2, "neutral": 3, "negative": 5}) == "negative"
    assert analytics.overall_sentiment({"positive": 4, "neutral": 3, "negative": 3}) == "mixed"
    assert analytics.overall_sentiment({"positive": 0, "neutral": 0, "negative": 0}) == "neutral"


# ── Dashboard, demographics, export ───────────────────────────────────────────

@pytest.mark.parametrize(
    "enps, engagement, sentiment, risk, score, level",
    [
        (100, 100, 1.0, 0.0, 100, "Excellent"),
        (0, 0, 0.0, 1.0, 25, "Poor"),
        # 0.3*55 + 0.4*80 + 0.2*60 + 0.1*70 = 67.5
        (10, 80, 0.2, 0.3, 68, "Fair"),
    ],
)
def test_composite_score(enps, engagement, sentiment, risk, score, level):
    result = analytics.composite_score(enps, engagement, sentiment, risk)
    assert result["score"] == score
    assert result["level"] == level
    assert sum(result["weights"].values()) == pytest.approx(1.0)


async def test_demographics(db, make_user):
    await make_user(age=23, gender="female", seniority="junior", hire_date=today() - timedelta(days=200))
    await make_user(age=40, gender="male", hire_date=today() - timedelta(days=365 * 6))
    await make_user()

    result = await analytics.demographics(db)
    ages = {r["age_range"]: r["count"] for r in result["age_distribution"]}
    assert ages == {"Under 25": 1, "35-44": 1, "Not specified": 1}
    seniority = {r["level"]: r["count"] for r in result["seniority_levels"]}
    assert seniority == {"junior": 1, "Not specified": 2}
    service = {r["range"]: r["count"] for r in result["years_of_service"]}
    assert service == {"< 1 year": 1, "5-10 years": 1, "Not specified": 1}
    assert result["summary"]["average_age"] == 31.5


async def test_export(db, make_user, add_checkin):
    user = await make_user()
    await add_checkin(user, today(), 4, feedback="Good day")

    checkins = await analytics.export(db, type="checkins")
    assert checkins["data"][0]["mood_label"] == "Happy"
    employees = await analytics.export(db, type="employees")
    assert employees["data"][0]["employee_id"] == user.employee_id

    with pytest.raises(ValidationFailed):
        await analytics.export(db, type="checkins", format="csv")
    with pytest.raises(ValidationFailed):
        await analytics.export(db, type="payroll")
