import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select

from gitgrade.api.deps import get_payment_gateway
from gitgrade.core.database import get_db
from gitgrade.core.errors import AlreadyPaidError, AnalysisNotCompletedError, PaymentProviderError
from gitgrade.core.rate_limit import RATE_LIMIT_STR, limiter
from gitgrade.models import AnalysisRecord
from gitgrade.schemas import CreateCheckoutRequest
from gitgrade.services.payment import PaymentGateway

router = APIRouter(prefix="/api/checkout", tags=["checkout"])
log = logging.getLogger(__name__)


@router.post("/create")
@limiter.limit(RATE_LIMIT_STR)
def create_checkout(
    request: Request,
    body: CreateCheckoutRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Paddle checkout for a completed, unpaid analysis."""
    record = db.exec(select(AnalysisRecord).where(AnalysisRecord.uuid == body.analysis_id)).first()
    if not record:
        raise HTTPException(status_code=404, detail="Analysis not found.")
    try:
        session = gateway.create_checkout_session(record)
    except AlreadyPaidError:
        raise HTTPException(status_code=400, detail="Analysis is already paid.")
    except AnalysisNotCompletedError:
        raise HTTPException(status_code=400, detail="Analysis must be completed before checkout.")
    except PaymentProviderError as e:
        log.exception("Checkout creation failed: analysis=%s", record.uuid)
        raise HTTPException(status_code=502, detail=f"Failed to create checkout session: {str(e)[:120]}")
    return {"data": {"session_id": session.session_id, "checkout_url": session.checkout_url}}


@router.get("/verify/{transaction_id}")
@limiter.limit(RATE_LIMIT_STR)
def verify_checkout(
    request: Request,
    transaction_id: str,
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return {"data": {"is_paid": gateway.verify_payment(transaction_id)}}
