# happypulse/services/insight_service.py
"""
Groq API integration for journal insights.

Produces {sentiment, emotions, themes, suggestions, source} for a journal
entry. Without an API key, or when Groq fails, a lexicon-based insight is
returned instead so the journal flow never depends on the LLM.
"""
import json
import logging
from typing import Optional

from groq import AsyncGroq

from happypulse.core.config import settings
from happypulse.services import lexicon

logger = logging.getLogger("insight_service")

# Lazy client instantiation
_client: Optional[AsyncGroq] = None


def _get_client() -> AsyncGroq:
    global _client
    if _client is None:
        _client = AsyncGroq(api_key=settings.GROQ_API_KEY)
    return _client


def _clean_json(raw: str) -> str:
    """Strip markdown code fences from model response if present."""
    raw = raw.strip()
    if raw.startswith("```"):
        parts = raw.split("```")
        raw = parts[1]
        if raw.startswith("json"):
            raw = raw[4:]
    return raw.strip()


SUGGESTIONS = {
    "workload": "Try breaking big tasks into smaller steps and flag blockers early.",
    "recognition": "Share a win with your team this week; small acknowledgements add up.",
    "growth": "Set one learning goal for the next two weeks.",
    "collaboration": "Schedule a short check-in with a colleague you enjoy working with.",
    "wellbeing": "Protect your sleep and take a proper break away from the screen today.",
    "management": "Bring one concrete question to your next 1:1 with your manager.",
    "work_life_balance": "Pick a clear stop time for work tonight and stick to it.",
    "compensation": "Write down your questions about pay and benefits before raising them with HR.",
}


def lexicon_insight(text: str) -> dict:
    result = lexicon.analyze(text)
    themes = [t["theme"] for t in result["themes"][:3]]
    emotions = [w["word"] for w in result["top_words"] if w["sentiment"] != "neutral"]
    suggestions = [SUGGESTIONS[t] for t in themes] or [
        "Keep journaling regularly; it helps to notice patterns over time."
    ]
    return {
        "sentiment": lexicon.collapse_label(result["sentiment_label"]),
        "sentiment_score": result["sentiment_score"],
        "emotions": emotions,
        "themes": themes,
        "suggestions": suggestions,
        "source": "lexicon",
    }


async def analyze_journal(title: str, body: str, mood: int) -> dict:
    """
    Ask Groq for a short structured reading of a journal entry.
    Returns the lexicon insight when Groq is not configured or fails.
    """
    text = f"{title}\n\n{body}"
    if not settings.GROQ_API_KEY:
        return lexicon_insight(text)

    prompt = f"""
You are a supportive workplace wellness assistant. An employee wrote this private journal entry
(self-reported mood {mood}/5):

"{text}"

Respond ONLY with valid JSON — no extra text, no markdown fences. Use exactly these keys:
{{
  "sentiment": "positive | neutral | negative",
  "emotions": ["up to 3 short emotion labels"],
  "themes": ["up to 3 workplace themes"],
  "suggestions": ["2-3 short, kind, practical suggestions"]
}}
"""
    try:
        client = _get_client()
        response = await client.chat.completions.create(
            model=settings.LLM_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You are a helpful wellness assistant. Always respond with valid JSON only.",
                },
                {"role": "user", "content": prompt},
            ],
            max_tokens=500,
            temperature=0.4,
        )
        raw = response.choices[0].message.content
        data = json.loads(_clean_json(raw))
        data["source"] = "llm"
        return data
    except Exception as e:
        logger.warning(f"[insight] Groq analysis failed ({e}); using lexicon insight")
        return lexicon_insight(text)
