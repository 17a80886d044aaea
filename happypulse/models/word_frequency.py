# happypulse/models/word_frequency.py
"""
Word-frequency index rows. Derived data: one row per text-bearing source
event, rebuildable from the event store via the backfill job.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, Date, JSON, UniqueConstraint, Index
from happypulse.db.session import IndexBase


class WordFrequencyRow(IndexBase):
    __tablename__ = "word_frequencies"
    __table_args__ = (
        UniqueConstraint("source_kind", "source_id", name="uq_word_frequency_source"),
        Index("ix_word_frequencies_dept_date", "department", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    source_kind = Column(String(10), nullable=False)   # journal | survey | checkin
    source_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False, index=True)

    top_words = Column(JSON, nullable=False)   # [{"word", "frequency", "sentiment"}]
    weight = Column(Float, default=1.0, nullable=False)
    sentiment_score = Column(Float, default=0.0, nullable=False)
    sentiment_label = Column(String(20), default="neutral", nullable=False)
    themes = Column(JSON, nullable=False)      # [{"theme", "confidence"}]
    total_words = Column(Integer, default=0, nullable=False)
    unique_words = Column(Integer, default=0, nullable=False)

    # Stamped at write time; later department moves do not rewrite history
    department = Column(String(50), nullable=False)
    mood = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
