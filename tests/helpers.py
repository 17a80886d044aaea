# tests/helpers.py
from datetime import date, datetime, timedelta

from happypulse.core.security import create_access_token
from happypulse.utils.dates import day_start


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def at(day: date, hour: int = 0) -> datetime:
    return day_start(day) + timedelta(hours=hour)
