"""
AI triage proxy: validates the patient input, builds the system prompt and
calls an OpenAI compatible chat-completions endpoint, then parses the
structured suffix out of the reply.

Upstream errors are never retried here (the SDK's own retries are disabled
too); the caller decides whether to resubmit.
"""
import logging
from dataclasses import dataclass, field

from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, OpenAI, RateLimitError

from careconnect.core.config import is_ai_configured, settings
from careconnect.core.errors import (
    InvalidInput,
    RateLimited,
    ServiceUnavailable,
    UpstreamError,
    UpstreamTimeout,
)
from careconnect.services.triage_parser import parse_diagnosis
from careconnect.services.validation import (
    INVALID_MESSAGES_ERROR,
    MAX_MESSAGE_LENGTH,
    sanitize_input,
    validate_age,
    validate_gender,
    validate_messages,
)

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = ("MILD", "MODERATE", "SEVERE", "EMERGENCY")

# One client per (key, base_url, timeout)
_clients: dict[tuple[str, str, float], OpenAI] = {}


@dataclass
class DiagnosisResult:
    message: str
    specialty: str | None = None
    pharmacy_needed: bool = False
    urgency: str = "unknown"
    gender: str | None = None
    age: int | None = None
    conversation: list[dict] = field(default_factory=list)


def get_ai_client() -> OpenAI:
    if not is_ai_configured():
        raise UpstreamError("AI service is not configured.")
    key = (settings.ai_api_key, settings.ai_base_url, settings.ai_timeout_seconds)
    if key not in _clients:
        _clients[key] = OpenAI(
            api_key=settings.ai_api_key,
            base_url=settings.ai_base_url,
            timeout=settings.ai_timeout_seconds,
            max_retries=0,
        )
    return _clients[key]


def build_patient_context(gender: str | None, age: int | None) -> str:
    parts = []
    if gender:
        parts.append(f"Gender: {gender}")
    if age is not None:
        parts.append(f"Age: {age}")
    if not parts:
        return ""
    return "\n\nPatient Profile: " + ", ".join(parts)


def build_system_prompt(gender: str | None, age: int | None, ongoing: bool = False) -> str:
    """gender and age must already be validated (validate_gender / validate_age)."""
    gender_hint = f" Consider gender-specific health factors for {gender} patients." if gender else ""
    severities = ", ".join(SEVERITY_LEVELS[:-1]) + f", or {SEVERITY_LEVELS[-1]}"
    stage = "Ongoing triage conversation" if ongoing else "Initial consultation"
    return f"""You are a healthcare AI assistant. Provide specific, actionable health guidance tailored to the patient's profile.{build_patient_context(gender, age)}

**Your response must include:**

1. ASSESSMENT: Clear analysis with severity ({severities}){gender_hint}
2. IMMEDIATE ACTIONS: 3-5 specific steps to take NOW
3. WARNING SIGNS: Specific symptoms requiring emergency care

**CRITICAL:** At the end of your response, include this EXACT format on separate lines:
SPECIALTY: [specialty name] (e.g., General Practitioner, Cardiologist, Neurologist, ENT, Dermatologist, etc.)
PHARMACY_NEEDED: [YES or NO]
URGENCY: [immediate, 24-hours, week, or routine]

For emergencies (chest pain, difficulty breathing, severe bleeding, stroke symptoms), start with "CALL EMERGENCY SERVICES IMMEDIATELY"

Always clarify this is guidance, not a diagnosis.

Current conversation: {stage}"""


def build_conversation(symptoms: str, history: list[dict]) -> list[dict]:
    """Inputs must be sanitized; an empty history becomes a single user turn built from the symptoms."""
    if history:
        return [{"role": m["role"], "content": m["content"]} for m in history]
    return [{"role": "user", "content": f"I'm experiencing the following symptoms: {symptoms}"}]


def _raise_upstream_error(exc: Exception) -> None:
    """Maps SDK exceptions to the service error taxonomy (no retry)."""
    if isinstance(exc, APITimeoutError):
        raise UpstreamTimeout() from exc
    if isinstance(exc, RateLimitError):
        raise RateLimited() from exc
    if isinstance(exc, APIStatusError) and exc.status_code == 402:
        raise ServiceUnavailable() from exc
    raise UpstreamError() from exc


def request_completion(messages: list[dict], client: OpenAI | None = None) -> str:
    client = client or get_ai_client()
    try:
        response = client.chat.completions.create(
            model=settings.ai_model,
            messages=messages,
            temperature=settings.ai_temperature,
            max_tokens=settings.ai_max_tokens,
        )
    except (APITimeoutError, RateLimitError, APIStatusError, APIConnectionError, APIError) as e:
        status = getattr(e, "status_code", None)
        logger.exception("AI API error (status=%s): %s", status, e)
        _raise_upstream_error(e)
    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


def diagnose(
    symptoms,
    history=None,
    gender=None,
    age=None,
    client: OpenAI | None = None,
) -> DiagnosisResult:
    """
    Full triage round: either a complete DiagnosisResult or a typed error,
    never a partial result.
    """
    if not symptoms or not isinstance(symptoms, str):
        raise InvalidInput("Symptoms are required and must be a string")
    history = [] if history is None else history
    if not validate_messages(history):
        raise InvalidInput(INVALID_MESSAGES_ERROR)

    clean_symptoms = sanitize_input(symptoms)
    clean_history = [
        {"role": m["role"], "content": sanitize_input(m["content"], MAX_MESSAGE_LENGTH)} for m in history
    ]
    valid_gender = validate_gender(gender)
    valid_age = validate_age(age)
    logger.info(
        "Validated triage input: symptoms_len=%s history=%s gender=%s age=%s",
        len(clean_symptoms),
        len(clean_history),
        valid_gender,
        valid_age,
    )

    system_prompt = build_system_prompt(valid_gender, valid_age, ongoing=bool(clean_history))
    conversation = build_conversation(clean_symptoms, clean_history)
    text = request_completion([{"role": "system", "content": system_prompt}, *conversation], client=client)
    logger.info("AI response received: length=%s", len(text))

    parsed = parse_diagnosis(text)
    return DiagnosisResult(
        message=parsed.assessment_text,
        specialty=parsed.specialty,
        pharmacy_needed=parsed.pharmacy_needed,
        urgency=parsed.urgency,
        gender=valid_gender,
        age=valid_age,
        conversation=conversation,
    )
