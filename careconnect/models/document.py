"""Uploaded medical documents; the bytes live in document storage under storage_path."""
from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from careconnect.core.clock import utcnow


class MedicalDocument(SQLModel, table=True):
    __tablename__ = "medical_documents"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    file_name: str
    file_type: str  # declared MIME type
    storage_path: str = Field(unique=True)  # "<user_id>/<epoch-ms>-<suffix>.<ext>"
    file_hash: str = Field(index=True)  # sha256 hex
    file_size: int
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
