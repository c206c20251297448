"""
Parsing of the metadata block the triage prompt asks the model to append:

    SPECIALTY: Cardiologist
    PHARMACY_NEEDED: YES
    URGENCY: immediate

Each key is optional and matched per line, case-insensitively; the first
occurrence wins and later duplicates are ignored. Every metadata line (valid
or not) is removed from the text shown to the patient. Markdown emphasis
around the key ("**SPECIALTY:** ...") is tolerated.
"""
import re
from dataclasses import dataclass

URGENCY_LEVELS = ("immediate", "24-hours", "week", "routine")
URGENCY_UNKNOWN = "unknown"

_DECOR = r"[ \t*_]*"


def _key_pattern(key: str) -> re.Pattern:
    return re.compile(
        rf"^{_DECOR}{key}{_DECOR}:{_DECOR}(?P<value>[^\r\n]*?){_DECOR}$",
        re.IGNORECASE | re.MULTILINE,
    )


_SPECIALTY_RE = _key_pattern("SPECIALTY")
_PHARMACY_RE = _key_pattern("PHARMACY_NEEDED")
_URGENCY_RE = _key_pattern("URGENCY")
_METADATA_LINE_RE = re.compile(
    rf"^{_DECOR}(?:SPECIALTY|PHARMACY_NEEDED|URGENCY){_DECOR}:[^\r\n]*(?:\r?\n)?",
    re.IGNORECASE | re.MULTILINE,
)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


@dataclass
class ParsedDiagnosis:
    assessment_text: str
    specialty: str | None = None
    pharmacy_needed: bool = False
    urgency: str = URGENCY_UNKNOWN


def _first_value(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group("value").strip().strip("[]").strip()
    return value or None


def _parse_pharmacy(value: str | None) -> bool:
    if not value:
        return False
    return re.match(r"yes\b", value, re.IGNORECASE) is not None


def _parse_urgency(value: str | None) -> str:
    if not value:
        return URGENCY_UNKNOWN
    normalized = value.strip().rstrip(".").lower()
    return normalized if normalized in URGENCY_LEVELS else URGENCY_UNKNOWN


def strip_metadata(text: str) -> str:
    cleaned = _METADATA_LINE_RE.sub("", text)
    return _BLANK_RUN_RE.sub("\n\n", cleaned).strip()


def parse_diagnosis(text: str | None) -> ParsedDiagnosis:
    text = (text or "").replace("\r\n", "\n")
    return ParsedDiagnosis(
        assessment_text=strip_metadata(text),
        specialty=_first_value(_SPECIALTY_RE, text),
        pharmacy_needed=_parse_pharmacy(_first_value(_PHARMACY_RE, text)),
        urgency=_parse_urgency(_first_value(_URGENCY_RE, text)),
    )
