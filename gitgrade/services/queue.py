"""
Durable analysis queue on the analysis_jobs table.

One job per analysis uuid; workers claim with a conditional UPDATE so two
workers can never hold the same analysis. Failed attempts go back to pending
with next_retry_at set until the retry policy is exhausted.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, update
from sqlmodel import Session, select

from gitgrade.core.config import settings
from gitgrade.core.database import utc_now
from gitgrade.models import AnalysisJob, JobStatus
from gitgrade.services.orchestrator import fail_analysis

logger = logging.getLogger(__name__)

CLAIM_CANDIDATES = 5


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: list[int] = field(default_factory=lambda: [30, 60, 120])
    retry_window: timedelta = timedelta(minutes=10)
    attempt_timeout_seconds: int = 180

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.job_max_attempts,
            backoff_seconds=settings.backoff_schedule,
            retry_window=timedelta(minutes=settings.job_retry_window_minutes),
            attempt_timeout_seconds=settings.job_timeout_seconds,
        )

    @property
    def stale_lock_after(self) -> timedelta:
        # A processing job whose worker died is reclaimed once it is clearly past its timeout
        return timedelta(seconds=self.attempt_timeout_seconds * 2)

    def exhausted(self, job: AnalysisJob, now: datetime) -> bool:
        """No attempt may start now: attempts used up or the retry window closed."""
        if job.attempt_count >= job.max_attempts:
            return True
        return job.first_attempted_at is not None and now > job.first_attempted_at + self.retry_window

    def delay_for(self, attempt: int) -> int:
        """Backoff after the given (1-based) attempt; the last step repeats."""
        index = min(max(attempt, 1), len(self.backoff_seconds)) - 1
        return self.backoff_seconds[index]

    def next_retry_at(self, job: AnalysisJob, now: datetime | None = None) -> datetime | None:
        """When the next attempt may run, or None when attempts or the retry window are used up."""
        now = now or utc_now()
        if job.attempt_count >= job.max_attempts:
            return None
        retry_at = now + timedelta(seconds=self.delay_for(job.attempt_count))
        started = job.first_attempted_at or now
        if retry_at > started + self.retry_window:
            return None
        return retry_at


def enqueue(db: Session, analysis_uuid: str, max_attempts: int | None = None) -> AnalysisJob:
    """Job for analysis_uuid; an existing job is returned as is."""
    job = get_job(db, analysis_uuid)
    if job is not None:
        return job
    job = AnalysisJob(analysis_uuid=analysis_uuid, max_attempts=max_attempts or settings.job_max_attempts)
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("Analysis job queued: analysis=%s job_id=%s", analysis_uuid, job.id)
    return job


def get_job(db: Session, analysis_uuid: str) -> AnalysisJob | None:
    return db.exec(select(AnalysisJob).where(AnalysisJob.analysis_uuid == analysis_uuid)).first()


def queue_depth(db: Session) -> int:
    stmt = select(func.count()).select_from(AnalysisJob).where(
        AnalysisJob.status.in_([JobStatus.PENDING, JobStatus.PROCESSING])
    )
    return int(db.exec(stmt).one())


def _lock_predicate(locked_at: datetime | None):
    return AnalysisJob.locked_at.is_(None) if locked_at is None else AnalysisJob.locked_at == locked_at


def _settle_abandoned(db: Session, job_id: int, analysis_uuid: str, locked_at: datetime | None, attempt: int, now: datetime) -> None:
    """A worker died holding the last permitted attempt: fail the job and its analysis instead of reclaiming."""
    message = f"Unexpected error: Attempt {attempt} was abandoned by its worker"
    result = db.execute(
        update(AnalysisJob)
        .where(
            AnalysisJob.id == job_id,
            AnalysisJob.status == JobStatus.PROCESSING,
            _lock_predicate(locked_at),
        )
        .values(
            status=JobStatus.FAILED,
            locked_by=None,
            locked_at=None,
            next_retry_at=None,
            error_message=message,
            updated_at=now,
        )
    )
    db.commit()
    if result.rowcount == 1:
        fail_analysis(db, analysis_uuid, message)
        logger.error("Job %s abandoned on attempt %s with no retries left, analysis %s failed", job_id, attempt, analysis_uuid)


def claim_next_job(
    db: Session,
    worker_id: str,
    policy: RetryPolicy | None = None,
    now: datetime | None = None,
) -> AnalysisJob | None:
    """
    Claim the oldest runnable job: pending and due, or processing with a stale lock.
    The claim is a conditional UPDATE on (id, status, locked_at); losing the race
    to another worker just moves on to the next candidate. A stale job with no
    attempts or retry window left is settled as failed rather than claimed.
    """
    policy = policy or RetryPolicy.from_settings()
    now = now or utc_now()
    stale_cutoff = now - policy.stale_lock_after
    candidates = db.exec(
        select(AnalysisJob)
        .where(
            or_(
                and_(
                    AnalysisJob.status == JobStatus.PENDING,
                    or_(AnalysisJob.next_retry_at.is_(None), AnalysisJob.next_retry_at <= now),
                ),
                and_(AnalysisJob.status == JobStatus.PROCESSING, AnalysisJob.locked_at < stale_cutoff),
            )
        )
        .order_by(AnalysisJob.created_at, AnalysisJob.id)
        .limit(CLAIM_CANDIDATES)
    ).all()
    # Commits below expire the ORM objects; predicates must use the values as first seen
    seen = [(c.id, c.analysis_uuid, c.status, c.locked_at, c.attempt_count, policy.exhausted(c, now)) for c in candidates]

    for job_id, analysis_uuid, status, locked_at, attempt_count, exhausted in seen:
        if status == JobStatus.PROCESSING and exhausted:
            _settle_abandoned(db, job_id, analysis_uuid, locked_at, attempt_count, now)
            continue
        result = db.execute(
            update(AnalysisJob)
            .where(
                AnalysisJob.id == job_id,
                AnalysisJob.status == status,
                _lock_predicate(locked_at),
            )
            .values(
                status=JobStatus.PROCESSING,
                locked_by=worker_id,
                locked_at=now,
                attempt_count=AnalysisJob.attempt_count + 1,
                first_attempted_at=func.coalesce(AnalysisJob.first_attempted_at, now),
                next_retry_at=None,
                updated_at=now,
            )
        )
        db.commit()
        if result.rowcount == 1:
            job = db.get(AnalysisJob, job_id)
            db.refresh(job)
            logger.info(
                "Job claimed: job_id=%s analysis=%s worker=%s attempt=%s/%s",
                job.id,
                job.analysis_uuid,
                worker_id,
                job.attempt_count,
                job.max_attempts,
            )
            return job
    return None


def _release(job: AnalysisJob, status: JobStatus, duration_ms: int | None, error: str | None) -> None:
    job.status = status
    job.locked_by = None
    job.locked_at = None
    job.duration_ms = duration_ms
    job.error_message = error
    job.updated_at = utc_now()


def mark_done(db: Session, job: AnalysisJob, duration_ms: int | None = None) -> None:
    _release(job, JobStatus.DONE, duration_ms, None)
    job.next_retry_at = None
    db.add(job)
    db.commit()


def mark_failed(db: Session, job: AnalysisJob, error: str, duration_ms: int | None = None) -> None:
    _release(job, JobStatus.FAILED, duration_ms, error[:2000])
    job.next_retry_at = None
    db.add(job)
    db.commit()
    logger.error("Job %s permanently failed after %s attempts: %s", job.id, job.attempt_count, error)


def schedule_retry(db: Session, job: AnalysisJob, retry_at: datetime, error: str, duration_ms: int | None = None) -> None:
    _release(job, JobStatus.PENDING, duration_ms, error[:2000])
    job.next_retry_at = retry_at
    db.add(job)
    db.commit()
    logger.warning(
        "Job %s failed (attempt %s/%s), retry at %s: %s",
        job.id,
        job.attempt_count,
        job.max_attempts,
        retry_at.isoformat(),
        error,
    )
