"""
Paddle checkout + webhook reconciliation.

unlock() is the only writer of the payment columns of an AnalysisRecord. Every
webhook delivery may arrive more than once; handling one twice changes nothing.
"""
import json
import logging
from typing import Any
from urllib.parse import quote

from sqlalchemy import update
from sqlmodel import Session, select

from gitgrade.core.config import settings
from gitgrade.core.database import utc_now
from gitgrade.core.errors import (
    AlreadyPaidError,
    AnalysisNotCompletedError,
    PaymentProviderError,
    WebhookSignatureError,
)
from gitgrade.integrations.paddle import PaddleClient, verify_signature
from gitgrade.models import AnalysisRecord, AnalysisStatus, PaymentRecord, PaymentStatus
from gitgrade.schemas.payment import CheckoutSession

logger = logging.getLogger(__name__)

EVENT_TRANSACTION_COMPLETED = "transaction.completed"
EVENT_TRANSACTION_PAYMENT_FAILED = "transaction.payment_failed"


def unlock(db: Session, record: AnalysisRecord, reference: str) -> bool:
    """Mark record paid. Conditional on is_paid = false, so a repeat call is a no-op (returns False)."""
    now = utc_now()
    result = db.execute(
        update(AnalysisRecord)
        .where(AnalysisRecord.id == record.id, AnalysisRecord.is_paid == False)  # noqa: E712
        .values(is_paid=True, payment_reference=reference, paid_at=now)
    )
    db.commit()
    db.refresh(record)
    unlocked = result.rowcount == 1
    if unlocked:
        logger.info("Analysis %s unlocked by payment %s", record.uuid, reference)
    return unlocked


def _int_or_zero(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class PaymentGateway:
    def __init__(
        self,
        db: Session,
        client: PaddleClient | None = None,
        webhook_secret: str | None = None,
        tolerance_seconds: int | None = None,
        price_id: str | None = None,
        frontend_url: str | None = None,
    ):
        self.db = db
        self.client = client or PaddleClient()
        self.webhook_secret = settings.paddle_webhook_secret if webhook_secret is None else webhook_secret
        self.tolerance_seconds = (
            settings.paddle_webhook_tolerance_seconds if tolerance_seconds is None else tolerance_seconds
        )
        self.price_id = price_id or settings.paddle_price_id
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")

    def checkout_url(self, transaction_id: str, record: AnalysisRecord) -> str:
        success_url = f"{self.frontend_url}/success?transaction_id={transaction_id}"
        cancel_url = f"{self.frontend_url}/analyze/{record.uuid}"
        return (
            f"{self.client.checkout_url}?transaction_id={quote(transaction_id)}"
            f"&success_url={quote(success_url, safe='')}"
            f"&cancel_url={quote(cancel_url, safe='')}"
        )

    def create_checkout_session(self, record: AnalysisRecord) -> CheckoutSession:
        if record.is_paid:
            raise AlreadyPaidError("This analysis has already been paid for")
        if record.status != AnalysisStatus.COMPLETED:
            raise AnalysisNotCompletedError("Analysis must be completed before payment")

        transaction = self.client.create_transaction(
            self.price_id,
            {
                "analysis_id": str(record.id),
                "analysis_uuid": record.uuid,
                "github_username": record.github_username,
            },
        )
        transaction_id = transaction.get("id")
        if not transaction_id:
            raise PaymentProviderError("Paddle transaction has no id")

        self.db.add(
            PaymentRecord(
                analysis_id=record.id,
                provider_transaction_id=transaction_id,
                amount_cents=0,
                currency="USD",
                status=PaymentStatus.PENDING,
            )
        )
        self.db.commit()
        logger.info("Checkout created: analysis=%s transaction=%s", record.uuid, transaction_id)
        return CheckoutSession(session_id=transaction_id, checkout_url=self.checkout_url(transaction_id, record))

    def verify_payment(self, transaction_id: str) -> bool:
        try:
            transaction = self.client.get_transaction(transaction_id)
        except PaymentProviderError as e:
            logger.warning("Payment verification failed for %s: %s", transaction_id, e)
            return False
        return transaction.get("status") == "completed"

    def handle_webhook(self, payload: bytes, signature: str | None) -> None:
        """Verify and apply one Paddle notification. Only a bad signature raises."""
        if self.webhook_secret:
            if not signature or not verify_signature(payload, signature, self.webhook_secret, self.tolerance_seconds):
                raise WebhookSignatureError("Invalid webhook signature")
        else:
            logger.warning("PADDLE_WEBHOOK_SECRET is not set, webhook signature not checked")

        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning("Webhook payload is not valid JSON: %s", e)
            return
        if not isinstance(event, dict):
            return
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        event_type = event.get("event_type")
        logger.info("Paddle webhook received: event=%s transaction=%s", event_type, data.get("id"))

        if event_type == EVENT_TRANSACTION_COMPLETED:
            self._handle_completed(data)
        elif event_type == EVENT_TRANSACTION_PAYMENT_FAILED:
            self._handle_payment_failed(data)

    def _find_payment(self, transaction_id: str | None) -> PaymentRecord | None:
        if not transaction_id:
            return None
        return self.db.exec(
            select(PaymentRecord).where(PaymentRecord.provider_transaction_id == transaction_id)
        ).first()

    def _pending_payment_for_analysis(self, analysis_id: Any) -> PaymentRecord | None:
        analysis_pk = _int_or_zero(analysis_id)
        if not analysis_pk:
            return None
        return self.db.exec(
            select(PaymentRecord)
            .where(PaymentRecord.analysis_id == analysis_pk, PaymentRecord.status == PaymentStatus.PENDING)
            .order_by(PaymentRecord.created_at.desc())
        ).first()

    def _handle_completed(self, data: dict[str, Any]) -> None:
        transaction_id = data.get("id")
        custom_data = data.get("custom_data") if isinstance(data.get("custom_data"), dict) else {}
        payment = self._find_payment(transaction_id) or self._pending_payment_for_analysis(custom_data.get("analysis_id"))
        if payment is None:
            logger.warning("No payment found for completed transaction %s", transaction_id)
            return

        if payment.status != PaymentStatus.COMPLETED:
            details = data.get("details") if isinstance(data.get("details"), dict) else {}
            totals = details.get("totals") if isinstance(details.get("totals"), dict) else {}
            billing = data.get("billing_details") if isinstance(data.get("billing_details"), dict) else {}
            customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}
            if transaction_id:
                # Fallback match by analysis id: the settled transaction replaces the checkout one
                payment.provider_transaction_id = transaction_id
            payment.status = PaymentStatus.COMPLETED
            payment.amount_cents = _int_or_zero(totals.get("grand_total"))
            payment.currency = str(data.get("currency_code") or payment.currency).upper()
            payment.customer_email = billing.get("email") or customer.get("email") or payment.customer_email
            payment.updated_at = utc_now()
            self.db.add(payment)
            self.db.commit()

        record = self.db.get(AnalysisRecord, payment.analysis_id)
        if record is None:
            logger.error("Payment %s points at missing analysis %s", payment.id, payment.analysis_id)
            return
        unlock(self.db, record, payment.provider_transaction_id)

    def _handle_payment_failed(self, data: dict[str, Any]) -> None:
        payment = self._find_payment(data.get("id"))
        if payment is None or payment.status != PaymentStatus.PENDING:
            return
        payment.status = PaymentStatus.FAILED
        payment.updated_at = utc_now()
        self.db.add(payment)
        self.db.commit()
        logger.info("Payment failed: transaction=%s", payment.provider_transaction_id)
