"""Per-IP analysis creation counter. A counter not seen within the window reads as zero."""
import logging
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlmodel import Session, select

from gitgrade.core.database import utc_now
from gitgrade.models import ThrottleCounter

logger = logging.getLogger(__name__)

WINDOW_HOURS = 1


def _counter(db: Session, ip_address: str) -> ThrottleCounter | None:
    return db.exec(select(ThrottleCounter).where(ThrottleCounter.ip_address == ip_address)).first()


def count_for_address(db: Session, ip_address: str, within_hours: int = WINDOW_HOURS, now: datetime | None = None) -> int:
    now = now or utc_now()
    counter = _counter(db, ip_address)
    if counter is None or counter.last_request_at < now - timedelta(hours=within_hours):
        return 0
    return counter.request_count


def increment_for_address(db: Session, ip_address: str, now: datetime | None = None) -> ThrottleCounter:
    now = now or utc_now()
    counter = _counter(db, ip_address)
    if counter is None:
        counter = ThrottleCounter(ip_address=ip_address, request_count=1, first_request_at=now, last_request_at=now)
    else:
        counter.request_count += 1
        counter.last_request_at = now
    db.add(counter)
    db.commit()
    db.refresh(counter)
    return counter


def prune_older_than(db: Session, hours: int, now: datetime | None = None) -> int:
    """Delete counters last seen before now - hours."""
    now = now or utc_now()
    result = db.execute(delete(ThrottleCounter).where(ThrottleCounter.last_request_at < now - timedelta(hours=hours)))
    db.commit()
    deleted = int(result.rowcount or 0)
    if deleted:
        logger.info("Pruned %s throttle counters older than %sh", deleted, hours)
    return deleted
