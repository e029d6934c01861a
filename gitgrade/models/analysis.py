"""Analysis lifecycle: pending -> processing -> completed | failed."""
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from gitgrade.core.database import utc_now


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)

    @property
    def progress(self) -> int:
        return _PROGRESS[self]


_PROGRESS = {
    AnalysisStatus.PENDING: 10,
    AnalysisStatus.PROCESSING: 50,
    AnalysisStatus.COMPLETED: 100,
    AnalysisStatus.FAILED: 0,
}

# processing -> processing is a retried attempt re-entering the same state
ALLOWED_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    AnalysisStatus.PENDING: frozenset({AnalysisStatus.PROCESSING}),
    AnalysisStatus.PROCESSING: frozenset(
        {AnalysisStatus.PROCESSING, AnalysisStatus.COMPLETED, AnalysisStatus.FAILED}
    ),
    AnalysisStatus.COMPLETED: frozenset(),
    AnalysisStatus.FAILED: frozenset(),
}


def can_transition(current: AnalysisStatus, target: AnalysisStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class AnalysisRecord(SQLModel, table=True):
    __tablename__ = "analyses"

    id: int | None = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=lambda: str(uuid4()), unique=True, index=True, max_length=36)
    github_username: str = Field(index=True, max_length=39)
    status: AnalysisStatus = Field(default=AnalysisStatus.PENDING, index=True)

    # Owned by the orchestrator; non-null only when completed
    overall_score: int | None = None
    profile_score: int | None = None
    projects_score: int | None = None
    consistency_score: int | None = None
    technical_score: int | None = None
    community_score: int | None = None
    github_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    ai_analysis: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    error_message: str | None = None
    completed_at: datetime | None = None

    # Owned by the payment unlock; is_paid never goes back to false
    is_paid: bool = Field(default=False, index=True)
    payment_reference: str | None = None
    paid_at: datetime | None = None

    ip_address: str | None = None
    created_at: datetime = Field(default_factory=utc_now, index=True)

    @property
    def category_scores(self) -> dict[str, int | None]:
        return {
            "profile": self.profile_score,
            "projects": self.projects_score,
            "consistency": self.consistency_score,
            "technical": self.technical_score,
            "community": self.community_score,
        }
