from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from careconnect.core.clock import utcnow


class Consultation(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    symptoms: str
    ai_diagnosis: str  # assessment text without the metadata lines
    specialty: str | None = None
    pharmacy_needed: bool = False
    severity_level: str = "unknown"  # parsed URGENCY
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
