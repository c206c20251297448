from datetime import date, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from careconnect.core.clock import utcnow


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    full_name: str = ""
    phone: str | None = None
    # Profile: gender and date of birth feed the patient context of AI triage
    date_of_birth: date | None = None
    gender: str | None = None  # male | female | other
    blood_type: str | None = None
    allergies: str | None = None
    created_at: datetime | None = Field(default_factory=utcnow, sa_type=DateTime)
    last_login_at: datetime | None = Field(default=None, sa_type=DateTime)
