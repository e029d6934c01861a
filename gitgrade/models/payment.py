from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from gitgrade.core.database import utc_now


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentRecord(SQLModel, table=True):
    """Checkout attempt for one analysis; the Paddle webhook finalizes it and unlocks the report."""

    __tablename__ = "payments"

    id: int | None = Field(default=None, primary_key=True)
    analysis_id: int = Field(foreign_key="analyses.id", index=True)
    provider_transaction_id: str = Field(unique=True, index=True)  # Paddle txn_...
    amount_cents: int = 0  # 0 until the completion webhook reports the grand total
    currency: str = "USD"
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)
    customer_email: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = Field(default_factory=utc_now)
