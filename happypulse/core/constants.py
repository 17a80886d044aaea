# happypulse/core/constants.py
"""Process-wide read-only constants."""

ROLES = ("employee", "manager", "hr", "admin")
ANALYTICS_ROLES = ("hr", "admin")

DEPARTMENTS = (
    "Engineering",
    "Marketing",
    "Sales",
    "HR",
    "Finance",
    "Operations",
    "Product",
)

MOOD_MIN = 1
MOOD_MAX = 5
MOOD_LABELS = {
    1: "Very Sad",
    2: "Sad",
    3: "Neutral",
    4: "Happy",
    5: "Very Happy",
}

CHECKIN_SOURCES = ("web", "mobile", "whatsapp", "slack")
FEEDBACK_MAX_LENGTH = 500

JOURNAL_TITLE_MAX_LENGTH = 200
JOURNAL_BODY_MAX_LENGTH = 10000
JOURNAL_CATEGORIES = ("personal", "work", "wellness", "goals", "gratitude", "challenges", "reflection")
JOURNAL_PRIVACY = ("private", "anonymous_share", "team_share")
READING_WORDS_PER_MINUTE = 200

RISK_LEVELS = ("low", "medium", "high")

SOURCE_KINDS = ("journal", "survey", "checkin")
SOURCE_WEIGHTS = {"journal": 1.0, "survey": 1.0, "checkin": 0.5}
MIN_INDEXABLE_TEXT = 10

SURVEY_TYPES = ("pulse", "onboarding", "feedback", "custom")
SURVEY_STATUSES = ("draft", "active", "closed", "archived")
QUESTION_TYPES = ("scale", "multiple_choice", "checkbox", "text", "boolean")
ENPS_CATEGORIES = ("recommendation", "loyalty", "enps")

QUOTE_STATUSES = ("generated", "viewed", "archived")

# Notification types
CHECK_IN_COMPLETED = "checkin_completed"
SURVEY_COMPLETED = "survey_completed"
SURVEY_REMINDER = "survey_reminder"
RISK_ALERT = "risk_alert"
ACHIEVEMENT_EARNED = "achievement_earned"
STREAK_MILESTONE = "streak_milestone"

NOTIFICATION_CHANNELS = ("in_app", "email", "whatsapp", "slack")
