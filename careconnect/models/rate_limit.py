"""Per-user hourly counters, one row per (user, feature)."""
from datetime import datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class RateLimitRecord(SQLModel, table=True):
    __tablename__ = "rate_limit_records"
    __table_args__ = (UniqueConstraint("user_id", "feature", name="uq_rate_limit_user_feature"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    feature: str = Field(index=True)  # ai_request | upload
    count: int = 0
    hour_start: datetime = Field(sa_type=DateTime)
    last_request: datetime | None = Field(default=None, sa_type=DateTime)  # written by the AI feature only
