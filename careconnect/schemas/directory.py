from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class DoctorCreate(BaseModel):
    name: str = Field(min_length=1)
    specialty: str = Field(min_length=1)
    qualification: str = ""
    experience_years: int = Field(default=0, ge=0)
    consultation_fee: float = Field(default=0.0, ge=0)
    available_online: bool = True
    available_physical: bool = True
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    rating: float = Field(default=0.0, ge=0, le=5)


class DoctorResponse(DoctorCreate):
    id: int


class PharmacyCreate(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    phone: str | None = None
    email: str | None = None
    operating_hours: str | None = None
    is_24_hours: bool = False
    rating: float = Field(default=0.0, ge=0, le=5)


class PharmacyResponse(PharmacyCreate):
    id: int


class AppointmentCreate(BaseModel):
    doctor_id: int
    appointment_type: Literal["online", "physical"] = "online"
    appointment_date: datetime
    notes: str = ""


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    doctor_name: str | None = None
    doctor_specialty: str | None = None
    appointment_type: str
    appointment_date: datetime
    status: str
    notes: str
