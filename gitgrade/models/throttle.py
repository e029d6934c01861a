"""Per-IP analysis creation counter (hourly ceiling on POST /api/analyze)."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from gitgrade.core.database import utc_now


class ThrottleCounter(SQLModel, table=True):
    __tablename__ = "analysis_requests"

    id: int | None = Field(default=None, primary_key=True)
    ip_address: str = Field(unique=True, index=True, max_length=64)
    request_count: int = 0
    first_request_at: datetime = Field(default_factory=utc_now)
    last_request_at: datetime = Field(default_factory=utc_now, index=True)
