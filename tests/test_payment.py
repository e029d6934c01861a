"""Paddle checkout, verification and webhook reconciliation."""
import json
import time

import pytest
from sqlmodel import select

from conftest import WEBHOOK_SECRET, FakePaddleClient
from gitgrade.core.errors import (
    AlreadyPaidError,
    AnalysisNotCompletedError,
    PaymentProviderError,
    WebhookSignatureError,
)
from gitgrade.integrations.paddle import SANDBOX_CHECKOUT_URL, sign_payload, verify_signature
from gitgrade.models import AnalysisStatus, PaymentRecord, PaymentStatus
from gitgrade.services.payment import PaymentGateway, unlock


def _gateway(db, paddle=None):
    return PaymentGateway(
        db,
        client=paddle or FakePaddleClient(),
        webhook_secret=WEBHOOK_SECRET,
        tolerance_seconds=5,
        price_id="pri_test",
        frontend_url="https://gitgrade.test/",
    )


def _event(event_type, transaction_id, **data):
    return json.dumps({"event_type": event_type, "data": {"id": transaction_id, **data}}).encode()


def _signed(payload, timestamp=None):
    return sign_payload(payload, WEBHOOK_SECRET, int(time.time()) if timestamp is None else timestamp)


def _completed(transaction_id, **data):
    data.setdefault("currency_code", "usd")
    data.setdefault("details", {"totals": {"grand_total": "999"}})
    data.setdefault("customer", {"email": "dev@example.com"})
    return _event("transaction.completed", transaction_id, **data)


def _payments(db):
    return db.exec(select(PaymentRecord)).all()


def test_checkout_creates_pending_payment(db, make_analysis):
    record = make_analysis()
    paddle = FakePaddleClient()
    session = _gateway(db, paddle).create_checkout_session(record)

    assert session.session_id == "txn_test_1"
    assert session.checkout_url.startswith(f"{SANDBOX_CHECKOUT_URL}?transaction_id=txn_test_1")
    assert "success_url=https%3A%2F%2Fgitgrade.test%2Fsuccess%3Ftransaction_id%3Dtxn_test_1" in session.checkout_url
    assert f"cancel_url=https%3A%2F%2Fgitgrade.test%2Fanalyze%2F{record.uuid}" in session.checkout_url
    assert paddle.created[0]["price_id"] == "pri_test"
    assert paddle.created[0]["custom_data"]["analysis_uuid"] == record.uuid

    (payment,) = _payments(db)
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount_cents == 0
    assert payment.currency == "USD"
    assert payment.analysis_id == record.id


def test_checkout_rejects_paid_analysis(db, make_analysis):
    with pytest.raises(AlreadyPaidError):
        _gateway(db).create_checkout_session(make_analysis(is_paid=True))


def test_checkout_rejects_unfinished_analysis(db, make_analysis):
    with pytest.raises(AnalysisNotCompletedError):
        _gateway(db).create_checkout_session(make_analysis(status=AnalysisStatus.PROCESSING))


def test_checkout_provider_failure_creates_nothing(db, make_analysis):
    with pytest.raises(PaymentProviderError):
        _gateway(db, FakePaddleClient(fail=True)).create_checkout_session(make_analysis())
    assert _payments(db) == []


def test_verify_payment(db):
    assert _gateway(db, FakePaddleClient(status="completed")).verify_payment("txn_1") is True
    assert _gateway(db, FakePaddleClient(status="ready")).verify_payment("txn_1") is False
    assert _gateway(db, FakePaddleClient(fail=True)).verify_payment("txn_1") is False


def test_signature_verification():
    payload = b'{"event_type":"transaction.completed"}'
    now = 1_700_000_000
    header = sign_payload(payload, WEBHOOK_SECRET, now)
    assert verify_signature(payload, header, WEBHOOK_SECRET, 5, now=now + 3)
    assert not verify_signature(payload, header, WEBHOOK_SECRET, 5, now=now + 6)
    assert not verify_signature(payload + b" ", header, WEBHOOK_SECRET, 5, now=now)
    assert not verify_signature(payload, header, "whsec_other", 5, now=now)
    assert not verify_signature(payload, "garbage", WEBHOOK_SECRET, 5, now=now)
    # Several h1 values during secret rotation
    rotated = f"{header};h1=deadbeef"
    assert verify_signature(payload, rotated, WEBHOOK_SECRET, 5, now=now)


def test_webhook_rejects_bad_signature(db, make_analysis):
    record = make_analysis()
    gateway = _gateway(db)
    gateway.create_checkout_session(record)
    payload = _completed("txn_test_1")
    with pytest.raises(WebhookSignatureError):
        gateway.handle_webhook(payload, "ts=1;h1=bad")
    with pytest.raises(WebhookSignatureError):
        gateway.handle_webhook(payload, None)
    with pytest.raises(WebhookSignatureError):
        gateway.handle_webhook(payload, _signed(payload, int(time.time()) - 60))
    db.refresh(record)
    assert record.is_paid is False


def test_completed_webhook_unlocks_once(db, make_analysis):
    record = make_analysis()
    gateway = _gateway(db)
    gateway.create_checkout_session(record)
    payload = _completed("txn_test_1")

    gateway.handle_webhook(payload, _signed(payload))
    db.refresh(record)
    assert record.is_paid is True
    assert record.payment_reference == "txn_test_1"
    paid_at = record.paid_at

    (payment,) = _payments(db)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.amount_cents == 999
    assert payment.currency == "USD"
    assert payment.customer_email == "dev@example.com"

    gateway.handle_webhook(payload, _signed(payload))
    db.refresh(record)
    assert record.paid_at == paid_at
    assert len(_payments(db)) == 1


def test_unlock_is_conditional(db, make_analysis):
    record = make_analysis()
    assert unlock(db, record, "txn_a") is True
    assert unlock(db, record, "txn_b") is False
    assert record.payment_reference == "txn_a"


def test_completed_webhook_falls_back_to_analysis_id(db, make_analysis):
    record = make_analysis()
    gateway = _gateway(db)
    gateway.create_checkout_session(record)
    payload = _completed("txn_other", custom_data={"analysis_id": str(record.id)}, billing_details={"email": "b@x.io"})

    gateway.handle_webhook(payload, _signed(payload))
    db.refresh(record)
    assert record.is_paid is True
    assert record.payment_reference == "txn_other"
    payment = _payments(db)[0]
    assert payment.provider_transaction_id == "txn_other"
    assert payment.customer_email == "b@x.io"


def test_completed_webhook_for_unknown_transaction_is_ignored(db, make_analysis):
    record = make_analysis()
    payload = _completed("txn_unknown")
    _gateway(db).handle_webhook(payload, _signed(payload))
    db.refresh(record)
    assert record.is_paid is False


def test_payment_failed_only_moves_pending(db, make_analysis):
    record = make_analysis()
    gateway = _gateway(db)
    gateway.create_checkout_session(record)
    failed = _event("transaction.payment_failed", "txn_test_1")

    gateway.handle_webhook(failed, _signed(failed))
    assert _payments(db)[0].status == PaymentStatus.FAILED

    # A late completion still unlocks; a later failure cannot undo it
    completed = _completed("txn_test_1")
    gateway.handle_webhook(completed, _signed(completed))
    gateway.handle_webhook(failed, _signed(failed))
    db.refresh(record)
    payment = _payments(db)[0]
    db.refresh(payment)
    assert payment.status == PaymentStatus.COMPLETED
    assert record.is_paid is True


@pytest.mark.parametrize("payload", [b"not json", b"[1, 2]", _event("customer.created", "ctm_1")])
def test_unusable_payloads_are_acknowledged(db, payload):
    _gateway(db).handle_webhook(payload, _signed(payload))
    assert _payments(db) == []


def test_webhook_without_secret_skips_signature(db, make_analysis):
    record = make_analysis()
    gateway = PaymentGateway(db, client=FakePaddleClient(), webhook_secret="")
    gateway.create_checkout_session(record)
    payload = _completed("txn_test_1")
    gateway.handle_webhook(payload, None)
    db.refresh(record)
    assert record.is_paid is True
