# happypulse/services/enps.py
"""
Employee Net Promoter Score math.

promoters >= 9, passives 7..8, detractors <= 6
eNPS = round(%promoters - %detractors)
"""
import math
from typing import Dict, Iterable, List, Optional

from happypulse.core.constants import ENPS_CATEGORIES


def is_enps_question(question: dict) -> bool:
    return question.get("type") == "scale" and (question.get("category") or "").lower() in ENPS_CATEGORIES


def enps_question_ids(questions: List[dict]) -> List[str]:
    return [str(q.get("id")) for q in questions or [] if is_enps_question(q)]


def coerce_score(value) -> Optional[int]:
    """Accept integer scores 0..10 (bools and fractional values are rejected)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, str):
        value = value.strip()
        if not value.lstrip("-").isdigit():
            return None
        value = int(value)
    if not isinstance(value, int) or value < 0 or value > 10:
        return None
    return value


def classify(score: int) -> str:
    if score >= 9:
        return "promoter"
    if score >= 7:
        return "passive"
    return "detractor"


def category_for(score: Optional[int]) -> str:
    if score is None:
        return "No Data"
    if score >= 50:
        return "Excellent"
    if score >= 10:
        return "Good"
    if score >= -10:
        return "Acceptable"
    return "Poor"


def _round_half_up(value: float) -> int:
    # halves round toward +inf, not to even
    return math.floor(value + 0.5)


def compute(scores: Iterable[int]) -> Dict:
    promoters = passives = detractors = 0
    for s in scores:
        bucket = classify(s)
        if bucket == "promoter":
            promoters += 1
        elif bucket == "passive":
            passives += 1
        else:
            detractors += 1
    total = promoters + passives + detractors
    if total == 0:
        return {
            "score": 0,
            "category": category_for(None),
            "total_responses": 0,
            "promoters": 0,
            "passives": 0,
            "detractors": 0,
            "promoter_percentage": 0,
            "passive_percentage": 0,
            "detractor_percentage": 0,
        }
    promoter_pct = promoters / total * 100
    detractor_pct = detractors / total * 100
    score = _round_half_up(promoter_pct - detractor_pct)
    return {
        "score": score,
        "category": category_for(score),
        "total_responses": total,
        "promoters": promoters,
        "passives": passives,
        "detractors": detractors,
        "promoter_percentage": round(promoter_pct, 1),
        "passive_percentage": round(passives / total * 100, 1),
        "detractor_percentage": round(detractor_pct, 1),
    }
