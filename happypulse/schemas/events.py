# happypulse/schemas/events.py
"""
Request and response shapes for the event endpoints.

Mood is accepted as `Any` on input: the event processor owns mood validation
and reports it as `InvalidMood` rather than a generic validation error.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ── Check-ins ─────────────────────────────────────────────────────────────────

class CheckInCreate(BaseModel):
    mood: Any = None
    feedback: Optional[str] = None
    source: str = "web"


class CheckInOut(BaseModel):
    id: int
    day: date
    mood: int
    feedback: Optional[str]
    source: str
    happy_coins_earned: int
    streak_at_check_in: int
    created_at: datetime

    class Config:
        from_attributes = True


# ── Journals ──────────────────────────────────────────────────────────────────

class JournalCreate(BaseModel):
    title: str = ""
    content: str = ""
    mood: Any = None
    category: str = "personal"
    tags: Optional[List[str]] = None
    privacy: str = "private"


class JournalUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    mood: Any = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    privacy: Optional[str] = None


class JournalOut(BaseModel):
    id: int
    title: str
    content: str = Field(validation_alias="body")
    mood: int
    category: str
    tags: Optional[List[str]]
    privacy: str
    word_count: int
    reading_time: int
    edit_count: int
    ai_insights: Optional[dict]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


# ── Quotes ────────────────────────────────────────────────────────────────────

class QuoteOut(BaseModel):
    id: int
    date: date
    quote_id: str
    text: str
    author: str
    category: str
    viewed: bool
    liked: bool
    shared: bool
    time_spent_seconds: int
    rating: Optional[int]
    status: str

    class Config:
        from_attributes = True


class QuoteEngagement(BaseModel):
    time_spent: Optional[int] = None
    rating: Any = None


# ── Surveys ───────────────────────────────────────────────────────────────────

class SurveyOut(BaseModel):
    id: int
    title: str
    description: Optional[str]
    type: str
    status: str
    questions: List[dict]
    reward_happy_coins: int
    created_at: datetime

    class Config:
        from_attributes = True


class SurveyAnswers(BaseModel):
    answers: Dict[str, Any] = {}


class SurveyResponseOut(BaseModel):
    id: int
    survey_id: int
    answers: Dict[str, Any]
    happy_coins_earned: int
    completed_at: datetime

    class Config:
        from_attributes = True
