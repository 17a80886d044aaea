# happypulse/models/user.py
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Date, Text, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from happypulse.db.session import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    department = Column(String(50), index=True, nullable=False)
    role = Column(String(20), default="employee", nullable=False)  # employee | manager | hr | admin
    is_active = Column(Boolean, default=True, nullable=False)

    # Demographics (optional, used by the demographics rollup)
    age = Column(Integer, nullable=True)
    gender = Column(String(30), nullable=True)
    seniority = Column(String(30), nullable=True)   # junior | mid | senior | lead | executive
    hire_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    wellness = relationship(
        "WellnessState", back_populates="user", uselist=False, cascade="all, delete", lazy="joined",
    )


class WellnessState(Base):
    """Derived per-user record. Written only by the event processor and the scheduler."""
    __tablename__ = "wellness_states"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)

    happy_coins = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_check_in_date = Column(Date, nullable=True)
    total_check_ins = Column(Integer, default=0, nullable=False)
    average_mood = Column(Float, nullable=True)

    risk_score = Column(Float, default=0.0, nullable=False)     # 0..1
    risk_level = Column(String(10), default="low", nullable=False, index=True)
    risk_alert_sent = Column(Boolean, default=False, nullable=False)
    risk_evaluated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="wellness")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    priority = Column(String(10), default="medium")   # low | medium | high
    channels = Column(JSON, nullable=True)            # channels actually used
    is_read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_key", name="uq_user_achievement"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    achievement_key = Column(String(50), nullable=False)
    earned_at = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
