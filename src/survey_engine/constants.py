"""Survey engine constants shared across the SDK.

These values are referenced by the engine, validator, invoker and message
renderer.  User-facing defaults are Hebrew, matching the deployed bot.

Most constants can be overridden via environment variables so that
deployments can adjust wording and timing without code changes.
"""

import os


def _word_set(env_name: str, default: str) -> frozenset[str]:
    """Parse a comma-separated env var into a lowercase word set."""
    raw = os.getenv(env_name, default)
    return frozenset(w.strip().lower() for w in raw.split(",") if w.strip())


# Replies accepted at an external check confirmation prompt.  Matching is
# case-insensitive after trimming.
AFFIRMATIVE_WORDS = _word_set("AFFIRMATIVE_WORDS", "yes,y,כן")
NEGATIVE_WORDS = _word_set("NEGATIVE_WORDS", "no,n,לא")

# Normalized answers recorded for non-textual responses.
CONFIRMED_ANSWER = "confirmed"
DECLINED_ANSWER = "declined"
IMAGE_ANSWER = "image uploaded"

# External check invoker.
# Overridable via EXTERNAL_CHECK_TIMEOUT_SECONDS / STALE_CALL_MINUTES /
# MAX_CALL_ATTEMPTS env vars.
EXTERNAL_CHECK_TIMEOUT_SECONDS = float(os.getenv("EXTERNAL_CHECK_TIMEOUT_SECONDS", "30"))
STALE_CALL_MINUTES = int(os.getenv("STALE_CALL_MINUTES", "10"))
# Total invocations per call, including the first (2 = one automatic retry)
MAX_CALL_ATTEMPTS = int(os.getenv("MAX_CALL_ATTEMPTS", "2"))
STALE_CALL_ERROR = "no result received"

# --- User-facing texts ---
COMPLETION_MESSAGE = os.getenv(
    "SURVEY_COMPLETION_MESSAGE",
    "תודה שהשלמת את הסקר! התשובות שלך נשמרו בהצלחה.",
)
NO_QUESTIONS_MESSAGE = os.getenv(
    "SURVEY_NO_QUESTIONS_MESSAGE",
    "מצטערים, אין כרגע סקר פעיל. אנא נסה שוב מאוחר יותר.",
)
GENERIC_ERROR_MESSAGE = os.getenv(
    "SURVEY_GENERIC_ERROR_MESSAGE",
    "אירעה שגיאה בעיבוד ההודעה. אנא נסה שוב מאוחר יותר.",
)
CALL_FAILED_MESSAGE = os.getenv(
    "SURVEY_CALL_FAILED_MESSAGE",
    "שגיאה בביצוע הבדיקה. אנא נסה שוב.",
)
DEFAULT_CONFIRMATION_PROMPT = os.getenv(
    "SURVEY_CONFIRMATION_PROMPT",
    "האם ברצונך להמשיך?\nכן / לא",
)
DEFAULT_PROCESSING_MESSAGE = os.getenv(
    "SURVEY_PROCESSING_MESSAGE",
    "מבצע בדיקה, אנא המתן...",
)
DEFAULT_DECLINE_MESSAGE = os.getenv(
    "SURVEY_DECLINE_MESSAGE",
    "הבדיקה לא בוצעה.",
)
REQUIRED_TEXT_MESSAGE = os.getenv(
    "SURVEY_REQUIRED_TEXT_MESSAGE",
    "זוהי שאלת חובה, אנא כתוב תשובה.",
)
IMAGE_REQUIRED_MESSAGE = os.getenv("SURVEY_IMAGE_REQUIRED_MESSAGE", "אנא שלח תמונה")

# Timezone used when evaluating welcome message time/day/date rules.
WELCOME_TIMEZONE = os.getenv("WELCOME_TIMEZONE", "Asia/Jerusalem")
# Greeting used when no stored welcome message matches; empty disables it.
DEFAULT_WELCOME_MESSAGE = os.getenv(
    "SURVEY_DEFAULT_WELCOME_MESSAGE",
    "ברוכים הבאים לבוט השירות שלנו! 👋",
)

# Headings used when rendering questions and corrections.
CHOICES_HEADING = os.getenv("SURVEY_CHOICES_HEADING", "אפשרויות תשובה:")
CHOICE_CORRECTION_HEADING = os.getenv(
    "SURVEY_CHOICE_CORRECTION_HEADING", "אנא בחר מהאפשרויות הבאות:"
)
IMAGE_PROMPT = os.getenv("SURVEY_IMAGE_PROMPT", "אנא שלחו תמונה.")
