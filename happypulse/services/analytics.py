# happypulse/services/analytics.py
"""
Aggregate query layer for HR/admin analytics.

Every rollup:
- takes a date window (default 30 days) and rejects windows over a year,
- returns a complete, zero-valued structure when nothing is in scope,
- orders department lists by the primary metric desc, then department name,
  and employee lists by the primary metric desc, then user id.

Routes wrap these calls in `with_deadline` so a slow rollup is cut off.
"""
import asyncio
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.config import settings
from happypulse.core.constants import MOOD_LABELS, MOOD_MAX, MOOD_MIN, RISK_LEVELS
from happypulse.core.errors import DeadlineExceeded, ValidationFailed, WindowTooLarge
from happypulse.models.surveys import Survey
from happypulse.models.user import User
from happypulse.services import enps as enps_math
from happypulse.services import lexicon
from happypulse.services.directory import list_employees, validate_department
from happypulse.services.event_processor import effective_streak
from happypulse.services.event_store import AggregateSpec, EventFilter, EventStore
from happypulse.services.risk_scorer import days_since, score_risk, snapshots_for_users
from happypulse.utils.dates import day_start, iter_days, normalize_range, today as utc_today, utcnow

EXCERPT_LENGTH = 200


# ── Shared helpers ────────────────────────────────────────────────────────────

async def with_deadline(awaitable: Awaitable, seconds: Optional[float] = None):
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds or settings.AGGREGATE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        raise DeadlineExceeded() from e


def resolve_window(
    start: Optional[datetime],
    end: Optional[datetime],
    default_days: int = 30,
) -> tuple:
    start, end = normalize_range(start, end, default_days)
    if end < start:
        raise ValidationFailed.field("start_date", "Start date must be before end date")
    if (end - start).days > settings.MAX_WINDOW_DAYS:
        raise WindowTooLarge()
    return start, end


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0


def _avg(values: Sequence[float], digits: int = 1) -> Optional[float]:
    return round(sum(values) / len(values), digits) if values else None


def _period(start: datetime, end: datetime) -> dict:
    return {"start_date": start.isoformat(), "end_date": end.isoformat(), "days": (end - start).days + 1}


def mood_trend_label(avg: Optional[float]) -> str:
    if avg is None:
        return "neutral"
    if avg > 3.5:
        return "positive"
    if avg < 2.5:
        return "concerning"
    return "neutral"


def engagement_trend_label(rate: float) -> str:
    if rate > 75:
        return "high"
    if rate > 50:
        return "moderate"
    return "low"


def _checkin_filter(start, end, departments=None) -> EventFilter:
    return EventFilter(
        kinds=["checkin"], roles=["employee"], active_only=True,
        departments=departments, start=start, end=end,
    )


async def _mood_stats(store: EventStore, flt: EventFilter) -> dict:
    total = (await store.aggregate(AggregateSpec(kind="checkin", metric="count", filter=flt)))[0]
    avg = (await store.aggregate(AggregateSpec(kind="checkin", metric="avg", field="mood", filter=flt)))[0]
    by_mood = await store.aggregate(AggregateSpec(kind="checkin", group_by="mood", filter=flt))
    distribution = {str(m): 0 for m in range(MOOD_MIN, MOOD_MAX + 1)}
    for bucket in by_mood:
        distribution[str(bucket.key)] = bucket.count
    return {
        "total_check_ins": total.count,
        "average_mood": round(avg.value, 1) if avg.value is not None else None,
        "mood_distribution": distribution,
    }


# ── Company overview ──────────────────────────────────────────────────────────

async def company_overview(db: AsyncSession, start=None, end=None) -> dict:
    start, end = resolve_window(start, end)
    store = EventStore(db)
    employees = await list_employees(db)
    total = len(employees)

    flt = _checkin_filter(start, end)
    active = await store.distinct_users(flt)
    moods = await _mood_stats(store, flt)
    engagement_rate = _pct(len(active), total)
    high_risk = sum(1 for e in employees if e.wellness and e.wellness.risk_level == "high")

    today = utc_today()
    by_dept: Dict[str, List[User]] = defaultdict(list)
    for e in employees:
        by_dept[e.department].append(e)
    departments = [
        {
            "department": dept,
            "employee_count": len(members),
            "active_employees": sum(1 for m in members if m.id in active),
            "average_happy_coins": _avg([m.wellness.happy_coins for m in members]) or 0,
            "average_streak": _avg([effective_streak(m.wellness, today) for m in members]) or 0,
        }
        for dept, members in by_dept.items()
    ]
    departments.sort(key=lambda d: (-d["employee_count"], d["department"]))

    return {
        "period": _period(start, end),
        "overview": {
            "total_employees": total,
            "active_employees": len(active),
            "engagement_rate": engagement_rate,
            "total_check_ins": moods["total_check_ins"],
            "average_mood": moods["average_mood"],
            "high_risk_employees": high_risk,
            "high_risk_percentage": _pct(high_risk, total),
        },
        "mood_distribution": moods["mood_distribution"],
        "departments": departments,
        "trends": {
            "mood": mood_trend_label(moods["average_mood"]),
            "engagement": engagement_trend_label(engagement_rate),
        },
    }


# ── Department analytics ──────────────────────────────────────────────────────

async def department_analytics(
    db: AsyncSession,
    department: str,
    start=None,
    end=None,
    include_individuals: bool = False,
) -> dict:
    validate_department(department)
    start, end = resolve_window(start, end)
    store = EventStore(db)
    employees = await list_employees(db, departments=[department])
    total = len(employees)
    today = utc_today()

    flt = _checkin_filter(start, end, [department])
    checkins = await store.fetch_rows("checkin", flt)
    per_user: Dict[int, List[int]] = defaultdict(list)
    for c in checkins:
        per_user[c.user_id].append(c.mood)
    moods = await _mood_stats(store, flt)
    daily = await store.aggregate(AggregateSpec(kind="checkin", metric="avg", field="mood", group_by="day", filter=flt))

    risk_distribution = {level: 0 for level in RISK_LEVELS}
    attention = []
    individuals = []
    for e in employees:
        state = e.wellness
        risk_distribution[state.risk_level] += 1
        user_moods = per_user.get(e.id, [])
        avg = _avg(user_moods)
        reasons = []
        if state.risk_level == "high":
            reasons.append("High risk level")
        if avg is not None and avg < 2.5:
            reasons.append("Low average mood")
        if not user_moods:
            reasons.append("No check-ins in period")
        if reasons:
            attention.append({
                "user_id": e.id,
                "name": e.name,
                "risk_level": state.risk_level,
                "risk_score": state.risk_score,
                "average_mood": avg,
                "check_ins": len(user_moods),
                "reasons": reasons,
            })
        individuals.append({
            "user_id": e.id,
            "name": e.name,
            "employee_id": e.employee_id,
            "check_ins": len(user_moods),
            "average_mood": avg,
            "happy_coins": state.happy_coins,
            "current_streak": effective_streak(state, today),
            "risk_level": state.risk_level,
            "risk_score": state.risk_score,
        })
    attention.sort(key=lambda a: (-a["risk_score"], a["user_id"]))
    individuals.sort(key=lambda i: (-i["check_ins"], i["user_id"]))

    active = len(per_user)
    engagement_rate = _pct(active, total)
    result = {
        "department": department,
        "period": _period(start, end),
        "overview": {
            "employee_count": total,
            "active_employees": active,
            "engagement_rate": engagement_rate,
            "total_check_ins": moods["total_check_ins"],
            "average_mood": moods["average_mood"],
            "average_happy_coins": _avg([e.wellness.happy_coins for e in employees]) or 0,
            "average_streak": _avg([effective_streak(e.wellness, today) for e in employees]) or 0,
        },
        "mood_distribution": moods["mood_distribution"],
        "risk_distribution": risk_distribution,
        "mood_trend": [
            {"date": b.key.isoformat(), "average_mood": round(b.value, 1), "check_ins": b.count}
            for b in daily
        ],
        "employees_needing_attention": attention[:10],
        "trends": {
            "mood": mood_trend_label(moods["average_mood"]),
            "engagement": engagement_trend_label(engagement_rate),
        },
    }
    if include_individuals:
        result["employees"] = individuals
    return result


# ── Risk assessment ───────────────────────────────────────────────────────────

def risk_recommendations(by_level: Dict[str, int], by_department: Dict[str, int], entries: List[dict]) -> List[dict]:
    recommendations = []
    if by_level.get("high", 0) > 5:
        recommendations.append({
            "priority": "urgent",
            "action": "Immediate intervention needed",
            "description": f"{by_level['high']} employees are at high risk. Consider one-on-one check-ins "
                           "or professional support.",
        })
    hotspots = sorted(d for d, count in by_department.items() if count >= 3)
    if hotspots:
        recommendations.append({
            "priority": "high",
            "action": "Department-wide intervention",
            "description": f"Departments {', '.join(hotspots)} show concerning patterns. "
                           "Consider team wellness sessions.",
        })
    disengaged = sum(
        1 for e in entries
        if e["recent_activity"]["days_since_last_check_in"] > 7 or e["recent_activity"]["weekly_check_ins"] == 0
    )
    if disengaged > 10:
        recommendations.append({
            "priority": "medium",
            "action": "Re-engagement campaign",
            "description": f"{disengaged} employees haven't engaged recently. "
                           "Consider reminder campaigns or incentives.",
        })
    return recommendations


async def risk_assessment(
    db: AsyncSession,
    risk_level: Optional[str] = None,
    department: Optional[str] = None,
) -> dict:
    """Score ALL active employees in scope, then filter by the requested bucket."""
    if risk_level is not None and risk_level not in RISK_LEVELS:
        raise ValidationFailed.field("risk_level", f"Risk level must be one of {', '.join(RISK_LEVELS)}")
    if department:
        validate_department(department)

    employees = await list_employees(db, departments=[department] if department else None)
    today = utc_today()
    snapshots = await snapshots_for_users(db, [e.id for e in employees], today)

    entries = []
    for e in employees:
        snapshot = snapshots[e.id]
        result = score_risk(snapshot)
        if risk_level and result.risk_level != risk_level:
            continue
        entries.append({
            "user_id": e.id,
            "name": e.name,
            "employee_id": e.employee_id,
            "department": e.department,
            "risk_score": result.risk_score,
            "risk_level": result.risk_level,
            "points": result.points,
            "indicators": result.indicators,
            "happy_coins": e.wellness.happy_coins,
            "current_streak": effective_streak(e.wellness, today),
            "recent_activity": {
                "weekly_check_ins": snapshot.weekly_check_ins,
                "average_mood": snapshot.average_mood,
                "days_since_last_check_in": days_since(snapshot),
                "recent_surveys": snapshot.recent_surveys,
            },
        })
    entries.sort(key=lambda x: (-x["risk_score"], x["user_id"]))

    by_level = {level: 0 for level in RISK_LEVELS}
    by_department: Dict[str, int] = {}
    for x in entries:
        by_level[x["risk_level"]] += 1
        if x["risk_level"] != "low":
            by_department[x["department"]] = by_department.get(x["department"], 0) + 1

    return {
        "summary": {
            "total_assessed": len(employees),
            "total_at_risk": by_level["high"] + by_level["medium"],
            "by_risk_level": by_level,
            "by_department": dict(sorted(by_department.items(), key=lambda kv: (-kv[1], kv[0]))),
        },
        "employees": entries,
        "recommendations": risk_recommendations(by_level, by_department, entries),
        "filters": {"risk_level": risk_level, "department": department},
    }


# ── Engagement metrics ────────────────────────────────────────────────────────

STREAK_BUCKETS = (("1-7", 1, 7), ("8-14", 8, 14), ("15-30", 15, 30), ("30+", 31, None))
COIN_BUCKETS = (("0-100", 0, 100), ("101-500", 101, 500), ("501-1000", 501, 1000), ("1000+", 1001, None))


def _bucket_for(value: int, buckets) -> Optional[str]:
    for name, lo, hi in buckets:
        if value >= lo and (hi is None or value <= hi):
            return name
    return None


async def engagement_metrics(db: AsyncSession, period_days: int = 30, department: Optional[str] = None) -> dict:
    if period_days < 1:
        raise ValidationFailed.field("period", "Period must be at least 1 day")
    if period_days > settings.MAX_WINDOW_DAYS:
        raise WindowTooLarge()
    if department:
        validate_department(department)

    end_day = utc_today()
    start_day = end_day - timedelta(days=period_days - 1)
    start, end = day_start(start_day), day_start(end_day + timedelta(days=1)) - timedelta(microseconds=1)
    store = EventStore(db)
    departments = [department] if department else None
    employees = await list_employees(db, departments=departments)
    total = len(employees)

    flt = _checkin_filter(start, end, departments)
    daily = {
        b.key: b for b in await store.aggregate(
            AggregateSpec(kind="checkin", metric="avg", field="mood", group_by="day", filter=flt)
        )
    }
    series = []
    for day in iter_days(start_day, end_day):
        bucket = daily.get(day)
        # One check-in per user per day, so the day's count is its active users
        count = bucket.count if bucket else 0
        series.append({
            "date": day.isoformat(),
            "active_users": count,
            "total_check_ins": count,
            "average_mood": round(bucket.value, 1) if bucket and bucket.value is not None else None,
            "engagement_rate": _pct(count, total),
        })

    today = utc_today()
    streaks = {name: 0 for name, _, _ in STREAK_BUCKETS}
    coins = {name: {"employee_count": 0, "total_coins": 0, "average_coins": 0} for name, _, _ in COIN_BUCKETS}
    no_streak = 0
    for e in employees:
        streak = effective_streak(e.wellness, today)
        name = _bucket_for(streak, STREAK_BUCKETS)
        if name is None:
            no_streak += 1
        else:
            streaks[name] += 1
        balance = e.wellness.happy_coins
        c = coins[_bucket_for(balance, COIN_BUCKETS)]
        c["employee_count"] += 1
        c["total_coins"] += balance
    for c in coins.values():
        c["average_coins"] = round(c["total_coins"] / c["employee_count"], 1) if c["employee_count"] else 0

    participants = await store.distinct_users(flt)
    total_checkins = sum(d["total_check_ins"] for d in series)
    mood_values = [b.value * b.count for b in daily.values() if b.value is not None]
    return {
        "period_days": period_days,
        "daily": series,
        "streak_distribution": streaks,
        "happy_coins_distribution": coins,
        "summary": {
            "total_employees": total,
            "participants": len(participants),
            "participation_rate": _pct(len(participants), total),
            "total_check_ins": total_checkins,
            "average_daily_engagement": round(sum(d["engagement_rate"] for d in series) / len(series), 1),
            "average_mood": round(sum(mood_values) / total_checkins, 1) if total_checkins else None,
            "employees_without_streak": no_streak,
        },
    }


# ── eNPS ──────────────────────────────────────────────────────────────────────

async def enps(
    db: AsyncSession,
    start=None,
    end=None,
    department: Optional[str] = None,
    survey_id: Optional[int] = None,
) -> dict:
    start, end = resolve_window(start, end, default_days=90)
    if department:
        validate_department(department)
    store = EventStore(db)

    stmt = select(Survey)
    if survey_id is not None:
        stmt = stmt.where(Survey.id == survey_id)
    surveys = {s.id: s for s in (await db.execute(stmt)).scalars().all()}
    question_ids = {sid: enps_math.enps_question_ids(s.questions) for sid, s in surveys.items()}
    question_ids = {sid: qids for sid, qids in question_ids.items() if qids}

    responses = []
    if question_ids:
        responses = await store.fetch_rows("survey_response", EventFilter(
            kinds=["survey_response"], user_ids=None, departments=[department] if department else None,
            start=start, end=end,
        ))
    user_ids = {r.user_id for r in responses}
    users = {}
    if user_ids:
        users = {u.id: u for u in (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars().all()}

    scores: List[int] = []
    by_dept: Dict[str, List[int]] = defaultdict(list)
    by_month: Dict[str, List[int]] = defaultdict(list)
    for r in responses:
        for qid in question_ids.get(r.survey_id, []):
            score = enps_math.coerce_score((r.answers or {}).get(qid))
            if score is None:
                continue
            scores.append(score)
            by_dept[users[r.user_id].department].append(score)
            by_month[r.created_at.strftime("%Y-%m")].append(score)

    overall = enps_math.compute(scores)
    departments = [dict(enps_math.compute(s), department=d) for d, s in by_dept.items()]
    departments.sort(key=lambda d: (-d["score"], d["department"]))
    return {
        "period": _period(start, end),
        "enps": overall,
        "department_breakdown": departments,
        "trend": [dict(enps_math.compute(by_month[m]), month=m) for m in sorted(by_month)],
        "surveys_analyzed": len(question_ids),
    }


# ── Sentiment ─────────────────────────────────────────────────────────────────

async def _text_items(db: AsyncSession, start, end, department: Optional[str]) -> List[dict]:
    """Journals, survey text answers and check-in feedback in scope, each scored once."""
    store = EventStore(db)
    departments = [department] if department else None
    flt_kwargs = dict(departments=departments, start=start, end=end)

    journals = await store.fetch_rows("journal", EventFilter(kinds=["journal"], **flt_kwargs))
    responses = await store.fetch_rows("survey_response", EventFilter(kinds=["survey_response"], **flt_kwargs))
    checkins = await store.fetch_rows("checkin", EventFilter(kinds=["checkin"], **flt_kwargs))

    user_ids = {r.user_id for r in journals} | {r.user_id for r in responses} | {r.user_id for r in checkins}
    users = {}
    if user_ids:
        users = {u.id: u for u in (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars().all()}
    survey_ids = {r.survey_id for r in responses}
    surveys = {}
    if survey_ids:
        surveys = {s.id: s for s in (await db.execute(select(Survey).where(Survey.id.in_(survey_ids)))).scalars().all()}

    items = []

    def add(source, source_id, user_id, text, question, shareable):
        tokens = lexicon.tokenize(text)
        score = lexicon.score_tokens(tokens)
        items.append({
            "source": source,
            "source_id": source_id,
            "department": users[user_id].department,
            "question": question,
            "text": text,
            "tokens": tokens,
            "score": score,
            "label": lexicon.sentiment_label(score),
            "shareable": shareable,
        })

    for j in journals:
        add("journal", j.id, j.user_id, f"{j.title}. {j.body}", "Journal entry", j.privacy != "private")
    for r in responses:
        survey = surveys[r.survey_id]
        for q in survey.questions or []:
            answer = (r.answers or {}).get(str(q.get("id")))
            if q.get("type") == "text" and isinstance(answer, str) and answer.strip():
                add("survey", r.id, r.user_id, answer.strip(), q.get("question"), True)
    for c in checkins:
        if c.feedback and c.feedback.strip():
            add("checkin", c.id, c.user_id, c.feedback.strip(), "Daily check-in feedback", True)
    return items


def _excerpt(text: str) -> str:
    return text[:EXCERPT_LENGTH] + ("..." if len(text) > EXCERPT_LENGTH else "")


def _keywords(items: List[dict], limit: int = 10) -> List[dict]:
    counts = Counter(tok for item in items for tok in item["tokens"])
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
    return [{"word": w, "count": c} for w, c in ranked]


def overall_sentiment(collapsed: Dict[str, int]) -> str:
    total = sum(collapsed.values())
    if not total:
        return "neutral"
    if collapsed["positive"] / total > 0.6:
        return "positive"
    if collapsed["negative"] / total > 0.4:
        return "negative"
    return "mixed"


def sentiment_recommendations(collapsed: Dict[str, int], departments: List[dict]) -> List[dict]:
    recommendations = []
    total = sum(collapsed.values())
    if total and collapsed["negative"] / total > 0.3:
        recommendations.append({
            "priority": "high",
            "action": "Address negative sentiment",
            "description": f"{round(collapsed['negative'] / total * 100)}% of responses are negative. "
                           "Consider focus groups to understand the underlying issues.",
        })
    for d in departments:
        if d["negative_percentage"] > 40:
            recommendations.append({
                "priority": "medium",
                "action": f"Department focus: {d['department']}",
                "description": f"{d['negative_percentage']}% negative sentiment in {d['department']}. "
                               "Consider a team check-in with the department lead.",
            })
    return recommendations


async def sentiment(db: AsyncSession, start=None, end=None, department: Optional[str] = None) -> dict:
    start, end = resolve_window(start, end)
    if department:
        validate_department(department)
    items = await _text_items(db, start, end, department)
    total = len(items)

    five = {label: 0 for label in ("very_positive", "positive", "neutral", "negative", "very_negative")}
    collapsed = {"positive": 0, "neutral": 0, "negative": 0}
    by_source = {"journal": 0, "survey": 0, "checkin": 0}
    dept_items: Dict[str, List[dict]] = defaultdict(list)
    for item in items:
        five[item["label"]] += 1
        collapsed[lexicon.collapse_label(item["label"])] += 1
        by_source[item["source"]] += 1
        dept_items[item["department"]].append(item)

    departments = []
    for dept, d_items in dept_items.items():
        counts = Counter(lexicon.collapse_label(i["label"]) for i in d_items)
        n = len(d_items)
        departments.append({
            "department": dept,
            "total": n,
            "positive": counts["positive"],
            "neutral": counts["neutral"],
            "negative": counts["negative"],
            "average_score": round(sum(i["score"] for i in d_items) / n, 3),
            "positive_percentage": round(counts["positive"] / n * 100),
            "neutral_percentage": round(counts["neutral"] / n * 100),
            "negative_percentage": round(counts["negative"] / n * 100),
        })
    departments.sort(key=lambda d: (-d["total"], d["department"]))

    # Private journals count toward totals but are never excerpted
    shareable = [i for i in items if i["shareable"]]
    ranked = sorted(shareable, key=lambda i: (-i["score"], i["source"], i["source_id"]))

    def render(item):
        return {
            "source": item["source"],
            "department": item["department"],
            "question": item["question"],
            "response": _excerpt(item["text"]),
            "sentiment_score": round(item["score"], 2),
        }

    most_negative = sorted(shareable, key=lambda i: (i["score"], i["source"], i["source_id"]))[:5]
    return {
        "period": _period(start, end),
        "summary": {
            "total_responses": total,
            "average_sentiment_score": round(sum(i["score"] for i in items) / total, 2) if total else 0,
            "overall_sentiment": overall_sentiment(collapsed),
            "by_source": by_source,
        },
        "sentiment_distribution": {
            label: {"count": count, "percentage": _pct(count, total)} for label, count in collapsed.items()
        },
        "detailed_distribution": five,
        "department_sentiment": departments,
        "insights": {
            "most_positive_responses": [render(i) for i in ranked[:5]],
            "most_negative_responses": [render(i) for i in most_negative],
            "positive_keywords": _keywords([i for i in items if lexicon.collapse_label(i["label"]) == "positive"]),
            "negative_keywords": _keywords([i for i in items if lexicon.collapse_label(i["label"]) == "negative"]),
            "recommendations": sentiment_recommendations(collapsed, departments),
        },
    }


# ── Dashboard ─────────────────────────────────────────────────────────────────

COMPOSITE_WEIGHTS = {"enps": 0.3, "engagement": 0.4, "sentiment": 0.2, "risk": 0.1}


def composite_score(enps_score: int, engagement_rate: float, sentiment_score: float, average_risk: float) -> dict:
    components = {
        "enps": max(0.0, (enps_score + 100) / 2),
        "engagement": max(0.0, min(100.0, engagement_rate)),
        "sentiment": max(0.0, (sentiment_score + 1) / 2 * 100),
        "risk": max(0.0, (1 - average_risk) * 100),
    }
    score = sum(components[k] * w for k, w in COMPOSITE_WEIGHTS.items())
    if score >= 85:
        level = "Excellent"
    elif score >= 70:
        level = "Good"
    elif score >= 55:
        level = "Fair"
    else:
        level = "Poor"
    return {
        "score": round(score),
        "level": level,
        "components": {k: round(v) for k, v in components.items()},
        "weights": dict(COMPOSITE_WEIGHTS),
    }


def dashboard_insights(enps_data: dict, engagement_rate: float, sentiment_data: dict, risk: dict) -> dict:
    strengths, concerns = [], []
    score = enps_data["enps"]["score"]
    if enps_data["enps"]["total_responses"]:
        (strengths if score >= 10 else concerns).append(
            f"eNPS is {score} ({enps_data['enps']['category']})"
        )
    if engagement_rate > 75:
        strengths.append(f"High check-in engagement ({engagement_rate}%)")
    elif engagement_rate < 50:
        concerns.append(f"Low check-in engagement ({engagement_rate}%)")
    avg_sentiment = sentiment_data["summary"]["average_sentiment_score"]
    if sentiment_data["summary"]["total_responses"]:
        if avg_sentiment > 0.15:
            strengths.append("Written feedback leans positive")
        elif avg_sentiment < -0.15:
            concerns.append("Written feedback leans negative")
    if risk["by_risk_level"]["high"]:
        concerns.append(f"{risk['by_risk_level']['high']} employee(s) at high risk")
    return {
        "strengths": strengths,
        "concerns": concerns,
        "priority_actions": risk["recommendations"] + sentiment_data["insights"]["recommendations"],
    }


async def dashboard(db: AsyncSession, start=None, end=None, department: Optional[str] = None) -> dict:
    start, end = resolve_window(start, end)
    if department:
        overview = await department_analytics(db, department, start, end)
        engagement_rate = overview["overview"]["engagement_rate"]
        total_employees = overview["overview"]["employee_count"]
    else:
        overview = await company_overview(db, start, end)
        engagement_rate = overview["overview"]["engagement_rate"]
        total_employees = overview["overview"]["total_employees"]

    enps_data = await enps(db, start, end, department)
    sentiment_data = await sentiment(db, start, end, department)
    employees = await list_employees(db, departments=[department] if department else None)
    risk_scores = [e.wellness.risk_score for e in employees]
    average_risk = sum(risk_scores) / len(risk_scores) if risk_scores else 0.0
    risk_levels = {level: 0 for level in RISK_LEVELS}
    for e in employees:
        risk_levels[e.wellness.risk_level] += 1
    by_department: Dict[str, int] = {}
    for e in employees:
        if e.wellness.risk_level != "low":
            by_department[e.department] = by_department.get(e.department, 0) + 1
    risk = {
        "by_risk_level": risk_levels,
        "average_risk_score": round(average_risk, 3),
        "recommendations": risk_recommendations(risk_levels, by_department, []),
    }

    composite = composite_score(
        enps_data["enps"]["score"],
        engagement_rate,
        sentiment_data["summary"]["average_sentiment_score"],
        average_risk,
    )
    return {
        "period": _period(start, end),
        "department": department,
        "composite_engagement_score": dict(composite, benchmark={
            "excellent": "85-100", "good": "70-84", "fair": "55-69", "poor": "0-54",
        }),
        "key_metrics": {
            "total_employees": total_employees,
            "enps_score": enps_data["enps"]["score"],
            "engagement_rate": engagement_rate,
            "average_sentiment_score": sentiment_data["summary"]["average_sentiment_score"],
            "high_risk_employees": risk_levels["high"],
            "average_risk_score": risk["average_risk_score"],
        },
        "overview": overview,
        "enps": enps_data,
        "sentiment": sentiment_data,
        "risk": risk,
        "insights": dashboard_insights(enps_data, engagement_rate, sentiment_data, risk),
    }


# ── Demographics ──────────────────────────────────────────────────────────────

AGE_BUCKETS = (("Under 25", 0, 24), ("25-34", 25, 34), ("35-44", 35, 44), ("45-54", 45, 54), ("55+", 55, None))
SERVICE_BUCKETS = (("< 1 year", 0, 1), ("1-3 years", 1, 3), ("3-5 years", 3, 5), ("5-10 years", 5, 10),
                   ("10+ years", 10, None))


def _service_bucket(years: float) -> str:
    for name, lo, hi in SERVICE_BUCKETS:
        if years >= lo and (hi is None or years < hi):
            return name
    return SERVICE_BUCKETS[-1][0]


def _distribution(counter: Counter, total: int, key: str) -> List[dict]:
    rows = [{key: k, "count": c, "percentage": round(c / total * 100) if total else 0} for k, c in counter.items()]
    rows.sort(key=lambda r: (-r["count"], str(r[key])))
    return rows


async def demographics(db: AsyncSession, department: Optional[str] = None) -> dict:
    if department:
        validate_department(department)
    employees = await list_employees(db, departments=[department] if department else None)
    total = len(employees)
    today = utc_today()

    ages = Counter()
    age_values = []
    genders = Counter()
    seniority = Counter()
    service = Counter()
    service_values = []
    departments = Counter()
    for e in employees:
        if e.age is not None:
            ages[_bucket_for(e.age, AGE_BUCKETS)] += 1
            age_values.append(e.age)
        else:
            ages["Not specified"] += 1
        genders[e.gender or "Not specified"] += 1
        seniority[e.seniority or "Not specified"] += 1
        if e.hire_date:
            years = (today - e.hire_date).days / 365.25
            service_values.append(years)
            service[_service_bucket(years)] += 1
        else:
            service["Not specified"] += 1
        departments[e.department] += 1

    return {
        "summary": {
            "total_employees": total,
            "average_age": _avg(age_values) or 0,
            "average_years_of_service": _avg(service_values) or 0,
        },
        "age_distribution": _distribution(ages, total, "age_range"),
        "gender_breakdown": _distribution(genders, total, "gender"),
        "seniority_levels": _distribution(seniority, total, "level"),
        "years_of_service": _distribution(service, total, "range"),
        "department_distribution": _distribution(departments, total, "department"),
    }


# ── Export ────────────────────────────────────────────────────────────────────

EXPORT_TYPES = ("checkins", "employees", "summary")
EXPORT_ROW_LIMIT = 10000


async def export(db: AsyncSession, type: str = "summary", format: str = "json", start=None, end=None) -> dict:
    if format != "json":
        raise ValidationFailed.field("format", "Only json export is supported")
    if type not in EXPORT_TYPES:
        raise ValidationFailed.field("type", f"Type must be one of {', '.join(EXPORT_TYPES)}")
    start, end = resolve_window(start, end)

    if type == "checkins":
        store = EventStore(db)
        rows = await store.fetch_rows("checkin", EventFilter(kinds=["checkin"], start=start, end=end,
                                                             limit=EXPORT_ROW_LIMIT))
        users = {}
        if rows:
            ids = {r.user_id for r in rows}
            users = {u.id: u for u in (await db.execute(select(User).where(User.id.in_(ids)))).scalars().all()}
        data: Any = [
            {
                "date": r.day.isoformat(),
                "employee_name": users[r.user_id].name,
                "employee_email": users[r.user_id].email,
                "department": users[r.user_id].department,
                "mood": r.mood,
                "mood_label": MOOD_LABELS[r.mood],
                "feedback": r.feedback,
                "happy_coins_earned": r.happy_coins_earned,
            }
            for r in rows
        ]
    elif type == "employees":
        employees = await list_employees(db)
        employees.sort(key=lambda e: (e.department, e.name, e.id))
        today = utc_today()
        data = [
            {
                "name": e.name,
                "email": e.email,
                "employee_id": e.employee_id,
                "department": e.department,
                "current_streak": effective_streak(e.wellness, today),
                "happy_coins": e.wellness.happy_coins,
                "risk_level": e.wellness.risk_level,
                "last_check_in": e.wellness.last_check_in_date.isoformat() if e.wellness.last_check_in_date else None,
            }
            for e in employees
        ]
    else:
        data = await company_overview(db, start, end)

    return {
        "export_date": utcnow().isoformat(),
        "type": type,
        "format": format,
        "period": _period(start, end),
        "data": data,
    }
