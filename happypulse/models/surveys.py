# happypulse/models/surveys.py
"""
ORM models for surveys and their responses.
Responses live in their own table; one row per (survey, user).
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, ForeignKey, JSON, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from happypulse.db.session import Base


class Survey(Base):
    """
    A survey definition. `questions` is a JSON list of
    {id, question, type, required, options, scale: {min, max}, category}.
    Pulse surveys carry the ISO week they were materialized for.
    """
    __tablename__ = "surveys"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), default="custom", nullable=False)      # pulse | onboarding | feedback | custom
    status = Column(String(20), default="draft", nullable=False)     # draft | active | closed | archived
    questions = Column(JSON, nullable=False)
    reward_happy_coins = Column(Integer, default=0, nullable=False)
    target_departments = Column(JSON, nullable=True)                 # None means everyone
    week_key = Column(String(10), unique=True, nullable=True)        # e.g. 2026-W42
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    responses = relationship("SurveyResponse", back_populates="survey", cascade="all, delete")


class SurveyResponse(Base):
    __tablename__ = "survey_responses"
    __table_args__ = (
        UniqueConstraint("survey_id", "user_id", name="uq_survey_response_user"),
        Index("ix_survey_responses_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("surveys.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    answers = Column(JSON, nullable=False)   # {"question_id": value}
    happy_coins_earned = Column(Integer, default=0, nullable=False)
    completed_at = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    survey = relationship("Survey", back_populates="responses")
    user = relationship("User")
