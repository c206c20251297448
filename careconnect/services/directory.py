"""Doctor / pharmacy lookups shared by the directory endpoints and AI triage."""
from datetime import date

from sqlmodel import Session, col, select

from careconnect.models import Doctor, Pharmacy

RECOMMENDATION_LIMIT = 3


def list_doctors(db: Session, specialty: str | None = None) -> list[Doctor]:
    stmt = select(Doctor)
    if specialty and specialty.strip():
        stmt = stmt.where(col(Doctor.specialty).icontains(specialty.strip(), autoescape=True))
    stmt = stmt.order_by(col(Doctor.rating).desc(), col(Doctor.id))
    return list(db.exec(stmt).all())


def recommend_doctors(db: Session, specialty: str | None, limit: int = RECOMMENDATION_LIMIT) -> list[Doctor]:
    """Best rated doctors whose specialty contains the one suggested by triage."""
    if not specialty:
        return []
    return list_doctors(db, specialty)[:limit]


def list_pharmacies(db: Session, open_24_hours: bool | None = None) -> list[Pharmacy]:
    stmt = select(Pharmacy)
    if open_24_hours is not None:
        stmt = stmt.where(Pharmacy.is_24_hours == open_24_hours)
    stmt = stmt.order_by(col(Pharmacy.rating).desc(), col(Pharmacy.id))
    return list(db.exec(stmt).all())


def age_on(birth_date: date | None, today: date) -> int | None:
    """Completed years; the birthday itself counts."""
    if birth_date is None:
        return None
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
