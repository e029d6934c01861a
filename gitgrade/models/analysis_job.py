"""Durable analysis queue: pending -> processing -> done | failed (pending again between retries)."""
from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from gitgrade.core.database import utc_now


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class AnalysisJob(SQLModel, table=True):
    __tablename__ = "analysis_jobs"

    id: int | None = Field(default=None, primary_key=True)
    # Execution key: one job per analysis, so one in-flight run per analysis
    analysis_uuid: str = Field(unique=True, index=True, max_length=36)
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    attempt_count: int = 0
    max_attempts: int = 3
    next_retry_at: datetime | None = Field(default=None, index=True)
    first_attempted_at: datetime | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = Field(default_factory=utc_now)
