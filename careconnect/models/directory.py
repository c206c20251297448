"""Doctors and pharmacies listed to patients."""
from sqlmodel import Field, SQLModel


class Doctor(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    specialty: str = Field(index=True)
    qualification: str = ""
    experience_years: int = 0
    consultation_fee: float = 0.0
    available_online: bool = True
    available_physical: bool = True
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    rating: float = 0.0


class Pharmacy(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    address: str
    phone: str | None = None
    email: str | None = None
    operating_hours: str | None = None  # e.g. "08:00-22:00"
    is_24_hours: bool = False
    rating: float = 0.0
