# happypulse/services/word_index.py
"""
Word-frequency index.

Write side: one WordFrequencyRow per text-bearing source event, stamped with
the author's department at write time. Re-indexing a source replaces its row.

Read side: word clouds (company and per user), department trends, summary,
top themes, and a backfill over existing events.
"""
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.config import settings
from happypulse.core.constants import MIN_INDEXABLE_TEXT, SOURCE_KINDS, SOURCE_WEIGHTS
from happypulse.core.errors import ValidationFailed
from happypulse.models.events import CheckIn, JournalEntry
from happypulse.models.surveys import Survey, SurveyResponse
from happypulse.models.user import User
from happypulse.models.word_frequency import WordFrequencyRow
from happypulse.services import lexicon
from happypulse.utils.dates import day_bucket

logger = logging.getLogger("word_index")


# ── Write side ────────────────────────────────────────────────────────────────

def survey_text(survey: Survey, answers: dict) -> str:
    """Concatenate free-text answers long enough to carry signal."""
    text_ids = {str(q.get("id")) for q in survey.questions or [] if q.get("type") == "text"}
    parts = []
    for qid, value in (answers or {}).items():
        if qid in text_ids and isinstance(value, str) and len(value.strip()) >= MIN_INDEXABLE_TEXT:
            parts.append(value.strip())
    return " ".join(parts)


async def _load_source(db: AsyncSession, source_kind: str, source_id: int):
    """Return (user_id, text, created_at, mood) for a source, or None when it should not be indexed."""
    if source_kind == "journal":
        entry = await db.get(JournalEntry, source_id)
        if entry is None or entry.is_deleted:
            return None
        return entry.user_id, f"{entry.title} {entry.body}", entry.created_at, entry.mood
    if source_kind == "checkin":
        checkin = await db.get(CheckIn, source_id)
        if checkin is None:
            return None
        return checkin.user_id, checkin.feedback or "", checkin.created_at, checkin.mood
    if source_kind == "survey":
        response = await db.get(SurveyResponse, source_id)
        if response is None:
            return None
        survey = await db.get(Survey, response.survey_id)
        return response.user_id, survey_text(survey, response.answers), response.created_at, None
    raise ValidationFailed.field("source_kind", f"Unknown source kind '{source_kind}'")


def build_row(
    source_kind: str,
    source_id: int,
    user_id: int,
    department: str,
    text: str,
    created_at: datetime,
    mood: Optional[int] = None,
) -> Optional[WordFrequencyRow]:
    if len((text or "").strip()) < MIN_INDEXABLE_TEXT:
        return None
    weight = SOURCE_WEIGHTS[source_kind]
    result = lexicon.analyze(text, k=settings.TOP_WORDS_K, weight=weight)
    if not result["tokens"]:
        return None
    return WordFrequencyRow(
        user_id=user_id,
        source_kind=source_kind,
        source_id=source_id,
        date=day_bucket(created_at),
        top_words=result["top_words"],
        weight=weight,
        sentiment_score=result["sentiment_score"],
        sentiment_label=result["sentiment_label"],
        themes=result["themes"],
        total_words=result["total_words"],
        unique_words=result["unique_words"],
        department=department,
        mood=mood,
    )


async def index_source(
    db: AsyncSession,
    index_db: AsyncSession,
    source_kind: str,
    source_id: int,
) -> Optional[WordFrequencyRow]:
    """
    Build (or rebuild) the row for one source. Idempotent per (source_kind, source_id).
    A source that no longer qualifies (deleted journal, text too short) loses its row.
    """
    loaded = await _load_source(db, source_kind, source_id)
    existing = (await index_db.execute(
        select(WordFrequencyRow).where(
            WordFrequencyRow.source_kind == source_kind,
            WordFrequencyRow.source_id == source_id,
        )
    )).scalar_one_or_none()

    row = None
    if loaded is not None:
        user_id, text, created_at, mood = loaded
        user = await db.get(User, user_id)
        # Keep the department stamped on first write
        department = existing.department if existing is not None else user.department
        row = build_row(source_kind, source_id, user_id, department, text, created_at, mood)

    if row is None:
        if existing is not None:
            await index_db.delete(existing)
            await index_db.commit()
            logger.info(f"[index] removed {source_kind}:{source_id}")
        return None

    if existing is not None:
        for attr in ("date", "top_words", "weight", "sentiment_score", "sentiment_label",
                     "themes", "total_words", "unique_words", "mood"):
            setattr(existing, attr, getattr(row, attr))
        row = existing
    else:
        index_db.add(row)
    await index_db.commit()
    logger.info(f"[index] {source_kind}:{source_id} → {[w['word'] for w in row.top_words]}")
    return row


async def remove_source(index_db: AsyncSession, source_kind: str, source_id: int) -> None:
    await index_db.execute(
        delete(WordFrequencyRow).where(
            WordFrequencyRow.source_kind == source_kind,
            WordFrequencyRow.source_id == source_id,
        )
    )
    await index_db.commit()


# ── Read side ─────────────────────────────────────────────────────────────────

def _validate_sources(sources: Optional[Sequence[str]]) -> Optional[List[str]]:
    if not sources:
        return None
    unknown = [s for s in sources if s not in SOURCE_KINDS]
    if unknown:
        raise ValidationFailed.field("sources", f"Unknown source kind(s): {', '.join(unknown)}")
    return list(sources)


async def _rows(
    index_db: AsyncSession,
    start: Optional[date] = None,
    end: Optional[date] = None,
    departments: Optional[Sequence[str]] = None,
    sources: Optional[Sequence[str]] = None,
    user_id: Optional[int] = None,
) -> List[WordFrequencyRow]:
    stmt = select(WordFrequencyRow)
    if start is not None:
        stmt = stmt.where(WordFrequencyRow.date >= start)
    if end is not None:
        stmt = stmt.where(WordFrequencyRow.date <= end)
    if departments:
        stmt = stmt.where(WordFrequencyRow.department.in_(list(departments)))
    sources = _validate_sources(sources)
    if sources:
        stmt = stmt.where(WordFrequencyRow.source_kind.in_(sources))
    if user_id is not None:
        stmt = stmt.where(WordFrequencyRow.user_id == user_id)
    result = await index_db.execute(stmt.order_by(WordFrequencyRow.date, WordFrequencyRow.id))
    return list(result.scalars().all())


def _overall_label(score: float) -> str:
    if score > 0.15:
        return "positive"
    if score < -0.15:
        return "concerning"
    return "balanced"


def _aggregate_words(rows: List[WordFrequencyRow]) -> Dict[str, dict]:
    words: Dict[str, dict] = {}
    for row in rows:
        collapsed = lexicon.collapse_label(row.sentiment_label)
        for w in row.top_words:
            entry = words.get(w["word"])
            if entry is None:
                entry = words[w["word"]] = {
                    "word": w["word"],
                    "frequency": 0.0,
                    "sentiment": w.get("sentiment", lexicon.word_sentiment(w["word"])),
                    "users": set(),
                    "departments": set(),
                    "sources": set(),
                    "occurrences": 0,
                    "sentiment_breakdown": {"positive": 0, "neutral": 0, "negative": 0},
                }
            entry["frequency"] += float(w["frequency"])
            entry["occurrences"] += 1
            entry["users"].add(row.user_id)
            entry["departments"].add(row.department)
            entry["sources"].add(row.source_kind)
            entry["sentiment_breakdown"][collapsed] += 1
    return words


def _render_words(words: Dict[str, dict], min_occurrences: int, limit: int) -> List[dict]:
    ranked = sorted(
        (w for w in words.values() if w["frequency"] >= min_occurrences),
        key=lambda w: (-w["frequency"], w["word"]),
    )[:limit]
    return [
        {
            "word": w["word"],
            "frequency": round(w["frequency"], 2),
            "sentiment": w["sentiment"],
            "user_count": len(w["users"]),
            "departments": sorted(w["departments"]),
            "sources": sorted(w["sources"]),
            "sentiment_breakdown": dict(w["sentiment_breakdown"]),
        }
        for w in ranked
    ]


def _insights(words: List[dict], rows: List[WordFrequencyRow]) -> dict:
    positive = sum(1 for w in words if w["sentiment_breakdown"]["positive"] > w["sentiment_breakdown"]["negative"])
    concerning = sum(1 for w in words if w["sentiment_breakdown"]["negative"] > w["sentiment_breakdown"]["positive"])
    departments = {r.department for r in rows}
    users = {r.user_id for r in rows}
    avg = sum(r.sentiment_score for r in rows) / len(rows) if rows else 0.0

    positive_indicators, concerns = [], []
    if words and positive > concerning:
        positive_indicators.append({
            "indicator": "Positive communication culture",
            "impact": f"{round(positive / len(words) * 100)}% of key terms lean positive",
        })
    if len(departments) >= 3:
        positive_indicators.append({
            "indicator": "Organization-wide engagement",
            "impact": f"{len(users)} employees writing across {len(departments)} departments",
        })
    if words and concerning > positive * 0.3:
        concerns.append({
            "concern": "Negative sentiment patterns",
            "recommendation": "Consider follow-up conversations where negative terms cluster",
        })
    return {
        "overall_sentiment": {"score": round(avg, 3), "label": _overall_label(avg)},
        "positive_indicators": positive_indicators,
        "concerns": concerns,
    }


async def word_cloud(
    index_db: AsyncSession,
    start: Optional[date] = None,
    end: Optional[date] = None,
    departments: Optional[Sequence[str]] = None,
    sources: Optional[Sequence[str]] = None,
    min_occurrences: int = 3,
    limit: int = 50,
) -> dict:
    rows = await _rows(index_db, start, end, departments, sources)
    words = _render_words(_aggregate_words(rows), min_occurrences, limit)
    return {
        "words": words,
        "insights": _insights(words, rows),
        "metadata": {
            "total_words": len(words),
            "data_points": len(rows),
            "employees_analyzed": len({r.user_id for r in rows}),
            "departments_analyzed": sorted({r.department for r in rows}),
            "sources_analyzed": sorted({r.source_kind for r in rows}),
        },
    }


async def user_word_cloud(
    index_db: AsyncSession,
    user_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    sources: Optional[Sequence[str]] = None,
    limit: int = 30,
) -> dict:
    rows = await _rows(index_db, start, end, None, sources, user_id=user_id)
    words = _render_words(_aggregate_words(rows), 0, limit)
    return {"user_id": user_id, "words": words, "total_words": len(words)}


async def department_trends(
    index_db: AsyncSession,
    department: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: int = 20,
) -> dict:
    rows = await _rows(index_db, start, end, [department])
    by_day: Dict[date, List[WordFrequencyRow]] = defaultdict(list)
    for row in rows:
        by_day[row.date].append(row)

    trends = []
    for day in sorted(by_day):
        day_rows = by_day[day]
        words = _render_words(_aggregate_words(day_rows), 0, limit)
        trends.append({
            "date": day.isoformat(),
            "entries": len(day_rows),
            "average_sentiment": round(sum(r.sentiment_score for r in day_rows) / len(day_rows), 3),
            "top_words": [{"word": w["word"], "frequency": w["frequency"]} for w in words],
        })
    return {"department": department, "trends": trends, "total_trends": len(trends)}


async def summary(
    index_db: AsyncSession,
    total_employees: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    department: Optional[str] = None,
) -> dict:
    rows = await _rows(index_db, start, end, [department] if department else None)
    source_stats = {kind: 0 for kind in SOURCE_KINDS}
    breakdown = {"positive": 0, "neutral": 0, "negative": 0}
    for row in rows:
        source_stats[row.source_kind] += 1
        breakdown[lexicon.collapse_label(row.sentiment_label)] += 1
    users = {r.user_id for r in rows}
    avg = sum(r.sentiment_score for r in rows) / len(rows) if rows else 0.0
    return {
        "total_entries": len(rows),
        "total_words": sum(r.total_words for r in rows),
        "unique_words": len({w["word"] for r in rows for w in r.top_words}),
        "average_sentiment": round(avg, 3),
        "source_stats": source_stats,
        "sentiment_breakdown": breakdown,
        "active_users": len(users),
        "participation_rate": round(len(users) / total_employees * 100, 1) if total_employees else 0,
    }


async def top_themes(
    index_db: AsyncSession,
    start: Optional[date] = None,
    end: Optional[date] = None,
    department: Optional[str] = None,
    limit: int = 10,
) -> List[dict]:
    rows = await _rows(index_db, start, end, [department] if department else None)
    themes: Dict[str, dict] = {}
    for row in rows:
        for t in row.themes or []:
            entry = themes.setdefault(t["theme"], {
                "theme": t["theme"], "count": 0, "confidence_total": 0.0,
                "departments": set(), "users": set(),
            })
            entry["count"] += 1
            entry["confidence_total"] += t["confidence"]
            entry["departments"].add(row.department)
            entry["users"].add(row.user_id)
    ranked = sorted(themes.values(), key=lambda t: (-t["count"], t["theme"]))[:limit]
    return [
        {
            "theme": t["theme"],
            "count": t["count"],
            "average_confidence": round(t["confidence_total"] / t["count"], 3),
            "department_count": len(t["departments"]),
            "user_count": len(t["users"]),
        }
        for t in ranked
    ]


# ── Backfill ──────────────────────────────────────────────────────────────────

async def process_existing(db: AsyncSession, index_db: AsyncSession) -> dict:
    """Index every qualifying event that has no row yet."""
    existing = await index_db.execute(select(WordFrequencyRow.source_kind, WordFrequencyRow.source_id))
    seen = {(kind, sid) for kind, sid in existing.all()}

    journal_ids = (await db.execute(
        select(JournalEntry.id).where(JournalEntry.is_deleted.is_(False)).order_by(JournalEntry.id)
    )).scalars().all()
    response_ids = (await db.execute(select(SurveyResponse.id).order_by(SurveyResponse.id))).scalars().all()
    checkin_ids = (await db.execute(
        select(CheckIn.id).where(CheckIn.feedback.is_not(None)).order_by(CheckIn.id)
    )).scalars().all()

    stats = {"journal": 0, "survey": 0, "checkin": 0, "skipped": 0}
    for kind, ids in (("journal", journal_ids), ("survey", response_ids), ("checkin", checkin_ids)):
        for sid in ids:
            if (kind, sid) in seen:
                stats["skipped"] += 1
                continue
            row = await index_source(db, index_db, kind, sid)
            if row is None:
                stats["skipped"] += 1
            else:
                stats[kind] += 1
    logger.info(f"[index] backfill done: {stats}")
    return stats
