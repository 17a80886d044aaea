# happypulse/models/events.py
"""
ORM models for the raw event streams: check-ins, journal entries and
daily-quote engagements. Survey responses live in models/surveys.py.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Date, Text, ForeignKey, JSON, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from happypulse.db.session import Base


class CheckIn(Base):
    """
    One mood check-in per user per UTC day bucket.
    The unique constraint on (user_id, day) is the store-level guard.
    """
    __tablename__ = "checkins"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_checkin_user_day"),
        Index("ix_checkins_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    day = Column(Date, nullable=False, index=True)
    mood = Column(Integer, nullable=False)                # 1..5
    feedback = Column(String(500), nullable=True)
    source = Column(String(20), default="web", nullable=False)
    happy_coins_earned = Column(Integer, default=0, nullable=False)
    streak_at_check_in = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")


class JournalEntry(Base):
    __tablename__ = "journal_entries"
    __table_args__ = (Index("ix_journals_user_created", "user_id", "created_at"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    mood = Column(Integer, nullable=False)
    category = Column(String(20), default="personal", nullable=False)
    tags = Column(JSON, default=list)
    privacy = Column(String(20), default="private", nullable=False)

    word_count = Column(Integer, default=0, nullable=False)
    reading_time = Column(Integer, default=1, nullable=False)   # minutes
    edit_count = Column(Integer, default=0, nullable=False)

    ai_insights = Column(JSON, nullable=True)   # {"sentiment", "emotions", "themes", "suggestions"}
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")


class DailyQuote(Base):
    """
    Stores the quote shown to a user on a calendar date and how they engaged with it.
    One row per user per day.
    """
    __tablename__ = "daily_quotes"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_quote_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    quote_id = Column(String(20), nullable=False)
    text = Column(Text, nullable=False)
    author = Column(String(100), nullable=False)
    category = Column(String(30), nullable=False)

    viewed = Column(Boolean, default=False, nullable=False)
    liked = Column(Boolean, default=False, nullable=False)
    shared = Column(Boolean, default=False, nullable=False)
    time_spent_seconds = Column(Integer, default=0, nullable=False)
    rating = Column(Integer, nullable=True)   # 1..5
    status = Column(String(20), default="generated", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
