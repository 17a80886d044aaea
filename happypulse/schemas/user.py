# happypulse/schemas/user.py
from datetime import date, datetime
from typing import Optional, List

from pydantic import BaseModel


# ── Wellness ──────────────────────────────────────────────────────────────────

class WellnessOut(BaseModel):
    happy_coins: int
    current_streak: int
    longest_streak: int
    last_check_in_date: Optional[date]
    total_check_ins: int
    average_mood: Optional[float]
    risk_score: float
    risk_level: str

    class Config:
        from_attributes = True


# ── Profile ───────────────────────────────────────────────────────────────────

class UserProfile(BaseModel):
    id: int
    employee_id: str
    email: str
    name: str
    department: str
    role: str
    is_active: bool
    age: Optional[int]
    gender: Optional[str]
    seniority: Optional[str]
    hire_date: Optional[date]
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    seniority: Optional[str] = None


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[dict]
    priority: str
    channels: Optional[List[str]]
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
