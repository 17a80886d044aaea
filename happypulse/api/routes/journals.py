# happypulse/api/routes/journals.py
"""
Private journal endpoints. Every entry is visible only to its author.

Entries can be edited for a limited window after creation; deletion is soft.
"""
from collections import Counter
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import get_current_user, get_processor
from happypulse.api.envelope import ok
from happypulse.core.constants import JOURNAL_CATEGORIES
from happypulse.core.errors import ValidationFailed
from happypulse.db.session import get_db
from happypulse.models.events import JournalEntry
from happypulse.models.user import User
from happypulse.schemas.events import JournalCreate, JournalOut, JournalUpdate
from happypulse.services.event_processor import EventProcessor

router = APIRouter(prefix="/journals", tags=["Journals"])


def _out(entry: JournalEntry) -> dict:
    data = JournalOut.model_validate(entry).model_dump()
    data["can_edit"] = EventProcessor.can_edit(entry)
    return data


@router.post("", status_code=201)
async def create_journal(
    payload: JournalCreate,
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    entry = await processor.create_journal(
        current_user,
        title=payload.title,
        body=payload.content,
        mood=payload.mood,
        category=payload.category,
        tags=payload.tags,
        privacy=payload.privacy,
    )
    return ok(_out(entry), message="Journal entry created")


@router.get("")
async def list_journals(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    category: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if category and category not in JOURNAL_CATEGORIES:
        raise ValidationFailed.field("category", "Unknown category")
    conditions = [JournalEntry.user_id == current_user.id, JournalEntry.is_deleted.is_(False)]
    if category:
        conditions.append(JournalEntry.category == category)

    total = (await db.execute(select(func.count()).select_from(JournalEntry).where(*conditions))).scalar_one()
    result = await db.execute(
        select(JournalEntry)
        .where(*conditions)
        .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return ok(
        [_out(e) for e in result.scalars().all()],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.get("/stats")
async def journal_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(JournalEntry).where(JournalEntry.user_id == current_user.id, JournalEntry.is_deleted.is_(False))
    )
    entries = result.scalars().all()
    categories = Counter(e.category for e in entries)
    tags = Counter(t for e in entries for t in e.tags or [])
    return ok({
        "total_entries": len(entries),
        "total_words": sum(e.word_count for e in entries),
        "average_mood": round(sum(e.mood for e in entries) / len(entries), 1) if entries else None,
        "categories": dict(sorted(categories.items(), key=lambda kv: (-kv[1], kv[0]))),
        "top_tags": [{"tag": t, "count": c} for t, c in sorted(tags.items(), key=lambda kv: (-kv[1], kv[0]))[:10]],
    })


@router.get("/{journal_id}")
async def get_journal(
    journal_id: int,
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    return ok(_out(await processor.get_own_journal(current_user, journal_id)))


@router.put("/{journal_id}")
async def update_journal(
    journal_id: int,
    payload: JournalUpdate,
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    entry = await processor.update_journal(current_user, journal_id, payload.model_dump(exclude_none=True))
    return ok(_out(entry), message="Journal entry updated")


@router.delete("/{journal_id}")
async def delete_journal(
    journal_id: int,
    current_user: User = Depends(get_current_user),
    processor: EventProcessor = Depends(get_processor),
):
    await processor.delete_journal(current_user, journal_id)
    return ok(message="Journal entry deleted")
