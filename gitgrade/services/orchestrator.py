"""
One analysis attempt: PENDING -> PROCESSING -> COMPLETED | FAILED.

The orchestrator is the only writer of the status/score/report columns of an
AnalysisRecord. Non-final attempts re-raise their error so the queue can retry;
only the final attempt (or fail_permanently) stores FAILED.
"""
import logging
import time
from typing import Any, Callable

from sqlmodel import Session, select

from gitgrade.core.database import utc_now
from gitgrade.core.errors import (
    AIAnalysisError,
    AnalysisNotFoundError,
    AttemptTimeoutError,
    GitHubError,
    InvalidTransitionError,
)
from gitgrade.models import AnalysisRecord, AnalysisStatus
from gitgrade.models.analysis import can_transition
from gitgrade.services.ai_analysis import AIAnalysisService, report_from_result
from gitgrade.services.profile_fetcher import ProfileFetcher
from gitgrade.services.scoring import calculate_overall_score, extract_category_scores

logger = logging.getLogger(__name__)


def failure_message(exc: Exception) -> str:
    if isinstance(exc, GitHubError):
        return f"GitHub API error: {exc}"
    if isinstance(exc, AIAnalysisError):
        return f"AI analysis error: {exc}"
    return f"Unexpected error: {exc}"


def get_record(db: Session, analysis_uuid: str) -> AnalysisRecord:
    record = db.exec(select(AnalysisRecord).where(AnalysisRecord.uuid == analysis_uuid)).first()
    if record is None:
        raise AnalysisNotFoundError(f"Analysis {analysis_uuid} not found")
    return record


def transition(record: AnalysisRecord, target: AnalysisStatus) -> None:
    current = AnalysisStatus(record.status)
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move analysis {record.uuid} from {current.value} to {target.value}")
    record.status = target


def fail_analysis(db: Session, analysis_uuid: str, message: str) -> None:
    """Force FAILED with message, passing through PROCESSING when still PENDING. Terminal records are left alone."""
    record = get_record(db, analysis_uuid)
    status = AnalysisStatus(record.status)
    if status.is_terminal:
        return
    if status == AnalysisStatus.PENDING:
        transition(record, AnalysisStatus.PROCESSING)
    transition(record, AnalysisStatus.FAILED)
    record.error_message = message
    record.completed_at = utc_now()
    db.add(record)
    db.commit()


class AnalysisOrchestrator:
    def __init__(
        self,
        db: Session,
        fetcher: ProfileFetcher | None = None,
        ai: AIAnalysisService | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.fetcher = fetcher or ProfileFetcher()
        self.ai = ai or AIAnalysisService()
        self.clock = clock

    def mark_processing(self, record: AnalysisRecord) -> None:
        transition(record, AnalysisStatus.PROCESSING)
        self.db.add(record)
        self.db.commit()

    def mark_completed(self, record: AnalysisRecord, result: dict[str, Any]) -> None:
        categories = result.get("categories") if isinstance(result.get("categories"), dict) else {}
        scores = extract_category_scores(categories)
        transition(record, AnalysisStatus.COMPLETED)
        record.overall_score = calculate_overall_score(categories)
        record.profile_score = scores["profile"]
        record.projects_score = scores["projects"]
        record.consistency_score = scores["consistency"]
        record.technical_score = scores["technical"]
        record.community_score = scores["community"]
        record.ai_analysis = report_from_result(result)
        record.error_message = None
        record.completed_at = utc_now()
        self.db.add(record)
        self.db.commit()

    def _check_deadline(self, deadline: float | None, stage: str) -> None:
        if deadline is not None and self.clock() >= deadline:
            raise AttemptTimeoutError(f"Attempt deadline exceeded before {stage}")

    def run(
        self,
        analysis_uuid: str,
        attempt: int = 1,
        max_attempts: int = 1,
        deadline: float | None = None,
    ) -> AnalysisRecord:
        """
        Run one attempt. Terminal records are returned untouched.
        On error: final attempt stores FAILED and returns; earlier attempts re-raise.
        """
        record = get_record(self.db, analysis_uuid)
        if AnalysisStatus(record.status).is_terminal:
            logger.info("Analysis %s already %s, skipping", analysis_uuid, record.status)
            return record

        self.mark_processing(record)
        logger.info("Analysis %s started: username=%s attempt=%s/%s", analysis_uuid, record.github_username, attempt, max_attempts)
        try:
            snapshot = self.fetcher.fetch(record.github_username)
            if record.github_data is None:
                record.github_data = snapshot.summary()
                self.db.add(record)
                self.db.commit()
            self._check_deadline(deadline, "AI call")
            result = self.ai.analyze(snapshot)
            self._check_deadline(deadline, "persisting results")
            # A lingering timed-out attempt must not overwrite a record the queue already settled
            self.db.refresh(record)
            if AnalysisStatus(record.status).is_terminal:
                logger.warning("Analysis %s settled while attempt %s was running, result dropped", analysis_uuid, attempt)
                return record
            self.mark_completed(record, result)
        except Exception as e:
            self.db.rollback()
            message = failure_message(e)
            if attempt < max_attempts:
                logger.warning("Analysis %s attempt %s/%s failed: %s", analysis_uuid, attempt, max_attempts, message)
                raise
            logger.error("Analysis %s failed after %s attempts: %s", analysis_uuid, attempt, message)
            fail_analysis(self.db, analysis_uuid, message)
            return get_record(self.db, analysis_uuid)

        logger.info("Analysis %s completed: overall_score=%s", analysis_uuid, record.overall_score)
        return record

    def fail_permanently(self, analysis_uuid: str, message: str) -> None:
        """Queue gave up: force FAILED, passing through PROCESSING when still PENDING."""
        fail_analysis(self.db, analysis_uuid, message)
