"""AI triage endpoint: per-user throttle, proxy call, consultation history."""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select
from starlette.concurrency import run_in_threadpool

from careconnect.api.deps import get_chat_session, get_current_user
from careconnect.core.clock import utcnow
from careconnect.core.database import get_db
from careconnect.core.errors import InvalidInput
from careconnect.core.rate_limit import AI_RATE_LIMIT, limiter
from careconnect.core.throttle import ChatSession, ai_request_throttle, log_quota_denial, raise_if_denied
from careconnect.models import Consultation, User
from careconnect.schemas.diagnosis import (
    ConsultationItem,
    DiagnosisResponse,
    QuotaUsageResponse,
    RecommendedDoctor,
)
from careconnect.services.diagnosis import diagnose
from careconnect.services.directory import age_on, recommend_doctors
from careconnect.services.validation import sanitize_input

log = logging.getLogger(__name__)

router = APIRouter(tags=["diagnosis"])


def _save_consultation(db: Session, user_id: int, symptoms: str, result) -> int | None:
    try:
        rec = Consultation(
            user_id=user_id,
            symptoms=sanitize_input(symptoms),
            ai_diagnosis=result.message,
            specialty=result.specialty,
            pharmacy_needed=result.pharmacy_needed,
            severity_level=result.urgency,
        )
        db.add(rec)
        db.commit()
        db.refresh(rec)
        return rec.id
    except SQLAlchemyError as e:
        db.rollback()
        log.warning("Consultation save failed for user_id=%s: %s", user_id, e)
        return None


@router.post("/ai-diagnosis", response_model=DiagnosisResponse)
@limiter.limit(AI_RATE_LIMIT)
async def ai_diagnosis(
    request: Request,
    user: User = Depends(get_current_user),
    session: ChatSession = Depends(get_chat_session),
    db: Session = Depends(get_db),
):
    """
    JSON body: {symptoms, messages?, gender?, age?}. Missing gender/age fall back
    to the caller's profile. The per-user throttle runs before anything else.
    """
    decision = ai_request_throttle().check_and_consume(db, user.id or 0, session)
    log_quota_denial(db, user.id, request.url.path, decision)
    raise_if_denied(decision, "AI requests")

    try:
        body = await request.json()
    except ValueError:
        raise InvalidInput("Invalid JSON body.")
    if not isinstance(body, dict):
        raise InvalidInput("Invalid JSON body.")

    symptoms = body.get("symptoms")
    gender = body.get("gender")
    age = body.get("age")
    if gender is None:
        gender = user.gender
    if age is None:
        age = age_on(user.date_of_birth, utcnow().date())

    result = await run_in_threadpool(diagnose, symptoms, body.get("messages"), gender, age)

    consultation_id = _save_consultation(db, user.id or 0, symptoms, result)
    doctors = recommend_doctors(db, result.specialty)
    return DiagnosisResponse(
        message=result.message,
        specialty=result.specialty,
        pharmacy_needed=result.pharmacy_needed,
        urgency=result.urgency,
        consultation_id=consultation_id,
        recommended_doctors=[
            RecommendedDoctor(
                id=d.id or 0,
                name=d.name,
                specialty=d.specialty,
                rating=d.rating,
                consultation_fee=d.consultation_fee,
                available_online=d.available_online,
                available_physical=d.available_physical,
            )
            for d in doctors
        ],
    )


@router.get("/ai-diagnosis/usage", response_model=QuotaUsageResponse)
def ai_diagnosis_usage(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    usage = ai_request_throttle().quota.usage(db, user.id or 0)
    return QuotaUsageResponse(count=usage.count, limit=usage.limit, remaining=usage.remaining, resets_at=usage.resets_at)


@router.get("/consultations", response_model=list[ConsultationItem])
def consultations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    limit: int = 50,
):
    stmt = (
        select(Consultation)
        .where(Consultation.user_id == user.id)
        .order_by(col(Consultation.created_at).desc(), col(Consultation.id).desc())
        .limit(min(max(limit, 1), 200))
    )
    return [
        ConsultationItem(
            id=c.id or 0,
            symptoms=c.symptoms,
            ai_diagnosis=c.ai_diagnosis,
            specialty=c.specialty,
            pharmacy_needed=c.pharmacy_needed,
            severity_level=c.severity_level,
            created_at=c.created_at,
        )
        for c in db.exec(stmt).all()
    ]
