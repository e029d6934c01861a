import logging

from sqlmodel import Session

from gitgrade.models import AnalysisRecord, AnalysisStatus
from gitgrade.services import queue

logger = logging.getLogger(__name__)


def create_analysis(db: Session, username: str, ip_address: str | None = None) -> AnalysisRecord:
    """New PENDING analysis for username (already validated) plus its queued job."""
    record = AnalysisRecord(
        github_username=username.lower(),
        status=AnalysisStatus.PENDING,
        ip_address=ip_address,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    queue.enqueue(db, record.uuid)
    logger.info("Analysis created: id=%s username=%s ip=%s", record.uuid, record.github_username, ip_address)
    return record
