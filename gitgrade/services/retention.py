"""Periodic cleanup: old unpaid analyses (with their jobs) and stale throttle counters."""
import logging
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlmodel import Session, select

from gitgrade.core.config import settings
from gitgrade.core.database import utc_now
from gitgrade.models import AnalysisJob, AnalysisRecord, PaymentRecord
from gitgrade.services import throttle

logger = logging.getLogger(__name__)


def prune_old_analyses(db: Session, days: int, now: datetime | None = None) -> int:
    """Delete unpaid analyses older than days. Analyses with any payment row are kept."""
    now = now or utc_now()
    with_payment = select(PaymentRecord.analysis_id)
    stale = db.exec(
        select(AnalysisRecord.id, AnalysisRecord.uuid).where(
            AnalysisRecord.is_paid == False,  # noqa: E712
            AnalysisRecord.created_at < now - timedelta(days=days),
            AnalysisRecord.id.not_in(with_payment),
        )
    ).all()
    if not stale:
        return 0
    ids = [row[0] for row in stale]
    uuids = [row[1] for row in stale]
    db.execute(delete(AnalysisJob).where(AnalysisJob.analysis_uuid.in_(uuids)))
    db.execute(delete(AnalysisRecord).where(AnalysisRecord.id.in_(ids)))
    db.commit()
    return len(ids)


def run_retention(db: Session, now: datetime | None = None) -> dict[str, int]:
    analyses = prune_old_analyses(db, settings.analysis_retention_days, now=now)
    requests = throttle.prune_older_than(db, settings.throttle_retention_hours, now=now)
    logger.info("Pruned old data: analyses=%s requests=%s", analyses, requests)
    return {"analyses": analyses, "requests": requests}
