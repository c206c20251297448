"""Doctors, pharmacies and appointment booking."""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, col, select

from careconnect.api.deps import get_current_user, require_admin
from careconnect.core.database import get_db
from careconnect.models import Appointment, Doctor, Pharmacy, User
from careconnect.schemas.directory import (
    AppointmentCreate,
    AppointmentResponse,
    DoctorCreate,
    DoctorResponse,
    PharmacyCreate,
    PharmacyResponse,
)
from careconnect.services.directory import list_doctors, list_pharmacies

log = logging.getLogger(__name__)

router = APIRouter(tags=["directory"])


@router.get("/doctors", response_model=list[DoctorResponse])
def doctors(
    specialty: str | None = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Best rated first; ?specialty= filters by case-insensitive substring."""
    return [DoctorResponse(**d.model_dump()) for d in list_doctors(db, specialty)]


@router.get("/doctors/{doctor_id}", response_model=DoctorResponse)
def doctor_detail(
    doctor_id: int,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    doctor = db.get(Doctor, doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found.")
    return DoctorResponse(**doctor.model_dump())


@router.get("/pharmacies", response_model=list[PharmacyResponse])
def pharmacies(
    open_24_hours: bool | None = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [PharmacyResponse(**p.model_dump()) for p in list_pharmacies(db, open_24_hours)]


@router.post("/admin/doctors", response_model=DoctorResponse, status_code=201)
def create_doctor(
    body: DoctorCreate,
    _: None = Depends(require_admin),
    db: Session = Depends(get_db),
):
    doctor = Doctor(**body.model_dump())
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    log.info("Doctor created: id=%s specialty=%s", doctor.id, doctor.specialty)
    return DoctorResponse(**doctor.model_dump())


@router.post("/admin/pharmacies", response_model=PharmacyResponse, status_code=201)
def create_pharmacy(
    body: PharmacyCreate,
    _: None = Depends(require_admin),
    db: Session = Depends(get_db),
):
    pharmacy = Pharmacy(**body.model_dump())
    db.add(pharmacy)
    db.commit()
    db.refresh(pharmacy)
    return PharmacyResponse(**pharmacy.model_dump())


def _naive_utc(value: datetime) -> datetime:
    """Stored naive UTC, like every other timestamp."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _appointment_response(appt: Appointment, doctor: Doctor | None) -> AppointmentResponse:
    return AppointmentResponse(
        id=appt.id or 0,
        doctor_id=appt.doctor_id,
        doctor_name=doctor.name if doctor else None,
        doctor_specialty=doctor.specialty if doctor else None,
        appointment_type=appt.appointment_type,
        appointment_date=appt.appointment_date,
        status=appt.status,
        notes=appt.notes,
    )


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
def book_appointment(
    body: AppointmentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    doctor = db.get(Doctor, body.doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found.")
    if body.appointment_type == "online" and not doctor.available_online:
        raise HTTPException(status_code=400, detail="This doctor does not offer online consultations.")
    if body.appointment_type == "physical" and not doctor.available_physical:
        raise HTTPException(status_code=400, detail="This doctor does not offer in-person consultations.")
    appt = Appointment(
        user_id=user.id or 0,
        doctor_id=doctor.id or 0,
        appointment_type=body.appointment_type,
        appointment_date=_naive_utc(body.appointment_date),
        notes=body.notes.strip(),
    )
    db.add(appt)
    db.commit()
    db.refresh(appt)
    log.info("Appointment booked: id=%s user_id=%s doctor_id=%s", appt.id, user.id, doctor.id)
    return _appointment_response(appt, doctor)


@router.get("/appointments", response_model=list[AppointmentResponse])
def my_appointments(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    stmt = (
        select(Appointment, Doctor)
        .join(Doctor, Appointment.doctor_id == Doctor.id, isouter=True)
        .where(Appointment.user_id == user.id)
        .order_by(col(Appointment.appointment_date))
    )
    return [_appointment_response(appt, doctor) for appt, doctor in db.exec(stmt).all()]


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    appt = db.get(Appointment, appointment_id)
    if not appt or appt.user_id != user.id:
        raise HTTPException(status_code=404, detail="Appointment not found.")
    if appt.status != "cancelled":
        appt.status = "cancelled"
        db.add(appt)
        db.commit()
        db.refresh(appt)
    return _appointment_response(appt, db.get(Doctor, appt.doctor_id))
