# happypulse/services/lexicon.py
"""
Deterministic text analytics: tokenizer, lexicon sentiment scorer and
theme matcher. Everything here is pure and CPU-only.

Sentiment:
    score = clip((pos - neg) / max(1, len(tokens)) * 10, -1, 1)

Labels:
    very_negative < -0.5 <= negative < -0.1 <= neutral <= 0.1 < positive <= 0.5 < very_positive
"""
import re
from collections import Counter
from typing import Dict, List, Tuple

MIN_TOKEN_LENGTH = 3

# ── Stopwords ─────────────────────────────────────────────────────────────────
# Function words plus filler verbs. Sentiment-bearing words (good, bad, best...)
# are intentionally absent so they still reach the scorer.

STOPWORDS = frozenset("""
a an the i me my myself we our ours ourselves you your yours yourself yourselves
he him his himself she her hers herself it its itself they them their theirs themselves
what which who whom this that these those and but or nor for yet so because as until
while of at by with about against between into through during before after above below
to from up down in out on off over under again further then once am is are was were be
been being have has had having do does did doing will would should could ought may might
must can shall here there when where why how all both each few more most other some such
no not only own same than too very just now also quite across along among around behind
beneath beside beyond except inside like near outside since throughout till toward upon
within without if any don use used using uses made make making way ways thing things see
seen saw look looked looking come came coming went going get got getting much many one two
first second new old big small large little right back even still put think thought
thinking know knew knowing really today day lot
""".split())

# ── Sentiment lexicons ────────────────────────────────────────────────────────

POSITIVE_WORDS = frozenset("""
happy joy joyful glad great good excellent amazing awesome wonderful fantastic love loved
enjoy enjoyed enjoying excited exciting grateful thankful appreciate appreciated
appreciation proud calm peaceful relaxed content satisfied confident motivated motivation
inspired inspiration supportive support supported helpful productive progress success
successful accomplish accomplished achieve achieved achievement improve improved
improvement growth learning opportunity collaboration teamwork recognition recognized
rewarding positive optimistic energized energetic balanced fun friendly kind nice best
better celebrate celebrated win won encouraging encouraged valued thriving fulfilled
""".split())

NEGATIVE_WORDS = frozenset("""
sad unhappy angry frustrated frustrating anxious anxiety stressed stress stressful worried
worry scared fear afraid overwhelmed overwhelming disappointed disappointing ashamed tired
exhausted exhausting burnout burned burnt fatigue pressure conflict problem problems issue
issues difficult hard struggle struggling concern concerned depressed depression lonely
isolated bored boring confused confusion uncertain doubt terrible awful horrible bad worst
worse hate hated upset annoyed annoying toxic unfair undervalued ignored overworked
overtime sick pain painful negative hopeless miserable demotivated unmotivated
""".split())

# ── Themes ────────────────────────────────────────────────────────────────────

THEMES: Dict[str, frozenset] = {
    "workload": frozenset({
        "workload", "deadline", "deadlines", "overtime", "busy", "pressure",
        "overwhelmed", "tasks", "hours", "overworked",
    }),
    "recognition": frozenset({
        "recognition", "recognized", "appreciated", "appreciation", "praise",
        "valued", "credit", "reward", "thanks", "acknowledged",
    }),
    "growth": frozenset({
        "growth", "learning", "learn", "career", "promotion", "skills",
        "development", "training", "mentor", "opportunity",
    }),
    "collaboration": frozenset({
        "team", "teamwork", "collaboration", "colleague", "colleagues",
        "together", "support", "help", "meeting", "communication",
    }),
    "wellbeing": frozenset({
        "sleep", "rest", "tired", "exhausted", "burnout", "health",
        "exercise", "meditation", "stress", "energy",
    }),
    "management": frozenset({
        "manager", "management", "leadership", "boss", "feedback",
        "direction", "decision", "decisions", "lead", "priorities",
    }),
    "work_life_balance": frozenset({
        "balance", "family", "weekend", "vacation", "personal",
        "home", "remote", "flexible", "time", "break",
    }),
    "compensation": frozenset({
        "salary", "pay", "bonus", "compensation", "raise",
        "benefits", "money", "paid", "income", "budget",
    }),
}

_NON_WORD = re.compile(r"[^\w\s]+|_")


def normalize(text: str) -> str:
    return _NON_WORD.sub(" ", (text or "").lower())


def tokenize(text: str) -> List[str]:
    """Lowercase, strip punctuation, split on whitespace, drop stopwords and short tokens."""
    return [
        tok for tok in normalize(text).split()
        if len(tok) >= MIN_TOKEN_LENGTH and tok not in STOPWORDS and not tok.isdigit()
    ]


def word_sentiment(word: str) -> str:
    if word in POSITIVE_WORDS:
        return "positive"
    if word in NEGATIVE_WORDS:
        return "negative"
    return "neutral"


def score_tokens(tokens: List[str]) -> float:
    pos = sum(1 for t in tokens if t in POSITIVE_WORDS)
    neg = sum(1 for t in tokens if t in NEGATIVE_WORDS)
    raw = (pos - neg) / max(1, len(tokens)) * 10
    return max(-1.0, min(1.0, raw))


def score_sentiment(text: str) -> float:
    return score_tokens(tokenize(text))


def sentiment_label(score: float) -> str:
    if score < -0.5:
        return "very_negative"
    if score < -0.1:
        return "negative"
    if score <= 0.1:
        return "neutral"
    if score <= 0.5:
        return "positive"
    return "very_positive"


def collapse_label(label: str) -> str:
    """Map the five-point label onto positive / neutral / negative."""
    if label in ("positive", "very_positive"):
        return "positive"
    if label in ("negative", "very_negative"):
        return "negative"
    return "neutral"


def extract_themes(tokens: List[str]) -> List[Dict[str, float]]:
    """
    Themes with at least one keyword hit.
    confidence = distinct matched keywords / keywords in theme.
    Ordered by confidence desc, then theme name.
    """
    present = set(tokens)
    found = []
    for theme, keywords in THEMES.items():
        matched = len(present & keywords)
        if matched:
            found.append({"theme": theme, "confidence": round(matched / len(keywords), 3)})
    found.sort(key=lambda t: (-t["confidence"], t["theme"]))
    return found


def top_words(tokens: List[str], k: int, weight: float = 1.0) -> List[Dict]:
    """Top-k words by count * weight, ties broken alphabetically."""
    counts = Counter(tokens)
    ranked: List[Tuple[str, int]] = sorted(counts.items(), key=lambda kv: (-kv[1] * weight, kv[0]))
    return [
        {"word": word, "frequency": round(count * weight, 2), "sentiment": word_sentiment(word)}
        for word, count in ranked[:k]
    ]


def analyze(text: str, k: int = 5, weight: float = 1.0) -> Dict:
    """Full analysis used by the word-frequency index and the sentiment rollup."""
    tokens = tokenize(text)
    score = score_tokens(tokens)
    return {
        "tokens": tokens,
        "top_words": top_words(tokens, k, weight),
        "sentiment_score": round(score, 3),
        "sentiment_label": sentiment_label(score),
        "themes": extract_themes(tokens),
        "total_words": len(tokens),
        "unique_words": len(set(tokens)),
    }
