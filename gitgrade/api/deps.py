from fastapi import Depends, HTTPException
from sqlmodel import Session, select

from gitgrade.core.database import get_db
from gitgrade.models import AnalysisRecord
from gitgrade.services.payment import PaymentGateway


def get_payment_gateway(db: Session = Depends(get_db)) -> PaymentGateway:
    return PaymentGateway(db)


def get_analysis_or_404(uuid: str, db: Session = Depends(get_db)) -> AnalysisRecord:
    record = db.exec(select(AnalysisRecord).where(AnalysisRecord.uuid == uuid)).first()
    if not record:
        raise HTTPException(status_code=404, detail="Analysis not found.")
    return record
