from datetime import datetime

from pydantic import BaseModel


class RecommendedDoctor(BaseModel):
    id: int
    name: str
    specialty: str
    rating: float
    consultation_fee: float
    available_online: bool
    available_physical: bool


class DiagnosisResponse(BaseModel):
    message: str
    success: bool = True
    specialty: str | None = None
    pharmacy_needed: bool = False
    urgency: str = "unknown"
    consultation_id: int | None = None
    recommended_doctors: list[RecommendedDoctor] = []


class ConsultationItem(BaseModel):
    id: int
    symptoms: str
    ai_diagnosis: str
    specialty: str | None = None
    pharmacy_needed: bool = False
    severity_level: str
    created_at: datetime


class QuotaUsageResponse(BaseModel):
    count: int
    limit: int
    remaining: int
    resets_at: datetime | None = None
