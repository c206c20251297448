from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from careconnect.core.clock import utcnow


class Appointment(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    doctor_id: int = Field(foreign_key="doctor.id", index=True)
    appointment_type: str = "online"  # online | physical
    appointment_date: datetime = Field(index=True, sa_type=DateTime)
    status: str = "pending"  # pending | confirmed | cancelled
    notes: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
