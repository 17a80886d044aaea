# happypulse/services/quote_service.py
"""
Daily motivational quotes and the weekly pulse survey template.

Quotes rotate deterministically: the same user sees the same quote all day,
and different users see different quotes on the same day.
"""
import hashlib
from datetime import date
from typing import List

QUOTE_BANK = [
    {"quote_id": "q001", "category": "motivation", "author": "Theodore Roosevelt",
     "text": "Believe you can and you're halfway there."},
    {"quote_id": "q002", "category": "resilience", "author": "Nelson Mandela",
     "text": "It always seems impossible until it's done."},
    {"quote_id": "q003", "category": "mindfulness", "author": "Thich Nhat Hanh",
     "text": "The present moment is filled with joy and happiness. If you are attentive, you will see it."},
    {"quote_id": "q004", "category": "growth", "author": "Carol Dweck",
     "text": "Becoming is better than being."},
    {"quote_id": "q005", "category": "teamwork", "author": "Helen Keller",
     "text": "Alone we can do so little; together we can do so much."},
    {"quote_id": "q006", "category": "wellness", "author": "Anne Lamott",
     "text": "Almost everything will work again if you unplug it for a few minutes, including you."},
    {"quote_id": "q007", "category": "motivation", "author": "Arthur Ashe",
     "text": "Start where you are. Use what you have. Do what you can."},
    {"quote_id": "q008", "category": "resilience", "author": "Confucius",
     "text": "Our greatest glory is not in never falling, but in rising every time we fall."},
    {"quote_id": "q009", "category": "gratitude", "author": "Melody Beattie",
     "text": "Gratitude turns what we have into enough."},
    {"quote_id": "q010", "category": "mindfulness", "author": "Jon Kabat-Zinn",
     "text": "You can't stop the waves, but you can learn to surf."},
    {"quote_id": "q011", "category": "growth", "author": "Albert Einstein",
     "text": "Life is like riding a bicycle. To keep your balance you must keep moving."},
    {"quote_id": "q012", "category": "wellness", "author": "Jim Rohn",
     "text": "Take care of your body. It's the only place you have to live."},
    {"quote_id": "q013", "category": "teamwork", "author": "Ken Blanchard",
     "text": "None of us is as smart as all of us."},
    {"quote_id": "q014", "category": "gratitude", "author": "Oprah Winfrey",
     "text": "Be thankful for what you have; you'll end up having more."},
]


def quote_for(user_id: int, day: date) -> dict:
    digest = hashlib.md5(f"{day.isoformat()}:{user_id}".encode()).hexdigest()
    return dict(QUOTE_BANK[int(digest, 16) % len(QUOTE_BANK)])


# ── Pulse survey template ─────────────────────────────────────────────────────

def pulse_questions() -> List[dict]:
    return [
        {
            "id": "enps", "question": "How likely are you to recommend this company as a place to work?",
            "type": "scale", "required": True, "scale": {"min": 0, "max": 10}, "category": "enps",
        },
        {
            "id": "workload", "question": "How manageable was your workload this week?",
            "type": "scale", "required": True, "scale": {"min": 1, "max": 5}, "category": "workload",
        },
        {
            "id": "supported", "question": "Did you feel supported by your team this week?",
            "type": "boolean", "required": False, "category": "collaboration",
        },
        {
            "id": "comments", "question": "Anything you'd like to share about your week?",
            "type": "text", "required": False, "category": "feedback",
        },
    ]


def pulse_title(week_key: str) -> str:
    return f"Weekly Pulse {week_key}"
