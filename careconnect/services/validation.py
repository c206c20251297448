"""Validation and sanitization of free text and patient data crossing the API boundary."""
import math
from collections.abc import Mapping

MAX_MESSAGE_LENGTH = 2000
MAX_MESSAGES = 50
MIN_AGE = 0
MAX_AGE = 150

MESSAGE_ROLES = ("user", "assistant")
GENDERS = ("male", "female", "other")

INVALID_MESSAGES_ERROR = "Invalid message format"


def sanitize_input(text, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Trims, caps at max_length and drops the literal characters '<' and '>'.
    No further escaping. sanitize_input(sanitize_input(x)) == sanitize_input(x).
    """
    if not text or not isinstance(text, str):
        return ""
    cleaned = text.replace("<", "").replace(">", "").strip()
    return cleaned[:max_length].rstrip()


def validate_age(age) -> int | None:
    """Finite number in [0, 150] -> floor(age); anything else is unspecified (None)."""
    if isinstance(age, bool) or not isinstance(age, (int, float)):
        return None
    # Range first: huge ints overflow float conversion in isfinite
    if age < MIN_AGE or age > MAX_AGE:
        return None
    if not math.isfinite(age):
        return None
    return math.floor(age)


def validate_gender(gender) -> str | None:
    if not gender or not isinstance(gender, str):
        return None
    normalized = gender.strip().lower()
    return normalized if normalized in GENDERS else None


def _is_valid_message(msg) -> bool:
    if not isinstance(msg, Mapping):
        return False
    role = msg.get("role")
    content = msg.get("content")
    if not role or not content:
        return False
    if not isinstance(role, str) or not isinstance(content, str):
        return False
    if role not in MESSAGE_ROLES:
        return False
    return len(content) <= MAX_MESSAGE_LENGTH


def validate_messages(messages) -> bool:
    """All-or-nothing: one malformed entry invalidates the whole history."""
    if not isinstance(messages, (list, tuple)):
        return False
    if len(messages) > MAX_MESSAGES:
        return False
    return all(_is_valid_message(m) for m in messages)
