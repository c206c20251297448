"""Security events: IP rate limit hits and per-user quota denials."""
from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from careconnect.core.clock import utcnow


class SecurityLog(SQLModel, table=True):
    __tablename__ = "security_logs"
    id: int | None = Field(default=None, primary_key=True)
    event: str = Field(index=True)  # failed_login | rate_limit | quota_exceeded
    user_id: int | None = Field(default=None, index=True)
    ip: str | None = None
    endpoint: str | None = None
    detail: str | None = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
