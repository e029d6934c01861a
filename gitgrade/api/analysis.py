import logging

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from gitgrade.api.deps import get_analysis_or_404
from gitgrade.api.responses import error_response
from gitgrade.core.config import settings
from gitgrade.core.database import get_db
from gitgrade.core.rate_limit import RATE_LIMIT_STR, client_ip, limiter
from gitgrade.models import AnalysisRecord, AnalysisStatus
from gitgrade.schemas import AnalyzeRequest
from gitgrade.services import report, throttle
from gitgrade.services.analysis import create_analysis

router = APIRouter(prefix="/api", tags=["analysis"])
log = logging.getLogger(__name__)

THROTTLE_RETRY_AFTER = 3600


@router.post("/analyze", status_code=202)
@limiter.limit(RATE_LIMIT_STR)
def analyze(request: Request, body: AnalyzeRequest, db: Session = Depends(get_db)):
    """Queue a new analysis; the worker picks it up. Poll the status link."""
    ip = client_ip(request)
    if throttle.count_for_address(db, ip, within_hours=1) >= settings.analysis_rate_limit_per_hour:
        log.warning("Analysis throttle hit: ip=%s", ip)
        return error_response(
            request,
            429,
            "Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(THROTTLE_RETRY_AFTER)},
            retry_after=THROTTLE_RETRY_AFTER,
        )
    throttle.increment_for_address(db, ip)

    record = create_analysis(db, body.username, ip_address=ip)
    return {
        "data": {
            "id": record.uuid,
            "username": record.github_username,
            "status": AnalysisStatus(record.status).value,
            "created_at": record.created_at.isoformat(),
        },
        "links": {
            "self": str(request.url_for("get_analysis", uuid=record.uuid)),
            "status": str(request.url_for("get_analysis_status", uuid=record.uuid)),
        },
    }


@router.get("/analysis/{uuid}")
@limiter.limit(RATE_LIMIT_STR)
def get_analysis(request: Request, record: AnalysisRecord = Depends(get_analysis_or_404)):
    return {"data": report.summary_view(record)}


@router.get("/analysis/{uuid}/status")
@limiter.limit(RATE_LIMIT_STR)
def get_analysis_status(request: Request, record: AnalysisRecord = Depends(get_analysis_or_404)):
    return {"data": report.status_view(record)}


@router.get("/analysis/{uuid}/full")
@limiter.limit(RATE_LIMIT_STR)
def get_full_analysis(request: Request, record: AnalysisRecord = Depends(get_analysis_or_404)):
    """Full report; 402 until the analysis is paid."""
    if not record.is_paid:
        return error_response(
            request,
            402,
            "Payment required for full report",
            links={"checkout": str(request.url_for("create_checkout"))},
        )
    return {"data": report.full_view(record)}
