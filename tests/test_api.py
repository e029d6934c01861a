"""HTTP surface: analysis creation and polling, report gating, checkout, webhook."""
import json
import time

from fastapi.testclient import TestClient
from sqlmodel import select

from conftest import WEBHOOK_SECRET
from gitgrade.integrations.paddle import sign_payload
from gitgrade.models import AnalysisStatus, PaymentRecord
from gitgrade.services import queue


def test_analyze_queues_analysis(client: TestClient, db):
    r = client.post("/api/analyze", json={"username": "OctoCat"})
    assert r.status_code == 202
    body = r.json()
    uuid = body["data"]["id"]
    assert body["data"]["username"] == "octocat"
    assert body["data"]["status"] == "pending"
    assert body["links"]["self"].endswith(f"/api/analysis/{uuid}")
    assert body["links"]["status"].endswith(f"/api/analysis/{uuid}/status")
    assert queue.get_job(db, uuid) is not None


def test_analyze_rejects_invalid_username(client: TestClient):
    for username in ("-octocat", "octo--cat", "a" * 40, "octo cat"):
        r = client.post("/api/analyze", json={"username": username})
        assert r.status_code == 422, username
        assert r.json()["status_code"] == 422
    r = client.post("/api/analyze", json={})
    assert r.json()["error"] == "GitHub username is required."
    r = client.post("/api/analyze", json={"username": "-bad"})
    body = r.json()
    assert body["error"] == "Invalid GitHub username format."
    assert body["errors"][0]["loc"] == ["body", "username"]
    assert "ctx" not in body["errors"][0]


def test_analyze_throttles_per_address(client: TestClient):
    for _ in range(10):
        assert client.post("/api/analyze", json={"username": "octocat"}).status_code == 202
    r = client.post("/api/analyze", json={"username": "octocat"})
    assert r.status_code == 429
    assert r.json()["retry_after"] == 3600
    assert r.headers["Retry-After"] == "3600"
    # Different client address is counted separately
    r = client.post("/api/analyze", json={"username": "octocat"}, headers={"X-Forwarded-For": "203.0.113.9"})
    assert r.status_code == 202


def test_status_progress(client: TestClient, make_analysis):
    pending = make_analysis(status=AnalysisStatus.PENDING)
    processing = make_analysis(status=AnalysisStatus.PROCESSING)
    completed = make_analysis()
    failed = make_analysis(status=AnalysisStatus.FAILED, error_message="GitHub API error: not found")

    assert client.get(f"/api/analysis/{pending.uuid}/status").json()["data"]["progress"] == 10
    assert client.get(f"/api/analysis/{processing.uuid}/status").json()["data"]["progress"] == 50

    done = client.get(f"/api/analysis/{completed.uuid}/status").json()["data"]
    assert done == {"id": completed.uuid, "status": "completed", "progress": 100, "redirect": f"/analysis/{completed.uuid}"}

    broken = client.get(f"/api/analysis/{failed.uuid}/status").json()["data"]
    assert broken["progress"] == 0
    assert broken["error"] == "GitHub API error: not found"


def test_unknown_analysis_is_404(client: TestClient):
    for path in ("", "/status", "/full"):
        r = client.get(f"/api/analysis/00000000-0000-0000-0000-000000000000{path}")
        assert r.status_code == 404
        assert r.json()["error"] == "Analysis not found."


def test_free_summary_is_truncated(client: TestClient, make_analysis):
    record = make_analysis()
    data = client.get(f"/api/analysis/{record.uuid}").json()["data"]
    assert data["status"] == "completed"
    assert data["overall_score"] == 71
    assert data["score_level"] == {"name": "good", "label": "Good", "color": "#eab308"}
    assert data["category_scores"]["projects"] == 70
    assert len(data["deal_breakers"]) == 3
    assert len(data["strengths"]) == 2
    assert "improvement_checklist" not in data
    assert data["is_paid"] is False


def test_paid_summary_is_complete(client: TestClient, make_analysis):
    record = make_analysis(is_paid=True)
    data = client.get(f"/api/analysis/{record.uuid}").json()["data"]
    assert len(data["deal_breakers"]) == 5
    assert len(data["strengths"]) == 5
    assert data["improvement_checklist"][0]["task"] == "Write a profile README"


def test_pending_summary_has_no_report(client: TestClient, make_analysis):
    record = make_analysis(status=AnalysisStatus.PENDING)
    data = client.get(f"/api/analysis/{record.uuid}").json()["data"]
    assert data["overall_score"] is None
    assert "deal_breakers" not in data
    assert data["completed_at"] is None


def test_full_report_requires_payment(client: TestClient, make_analysis):
    record = make_analysis()
    r = client.get(f"/api/analysis/{record.uuid}/full")
    assert r.status_code == 402
    assert r.json()["error"] == "Payment required for full report"
    assert r.json()["links"]["checkout"].endswith("/api/checkout/create")


def test_full_report_when_paid(client: TestClient, make_analysis):
    record = make_analysis(is_paid=True, github_data={"user": {"login": "octocat"}})
    r = client.get(f"/api/analysis/{record.uuid}/full")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["score_level"]["description"] == "Solid profile with room for improvement"
    assert data["recruiter_perspective"] == "Worth a phone screen."
    assert len(data["deal_breakers"]) == 5
    assert "profile_completeness" in data["categories"]
    assert data["github_data"]["user"]["login"] == "octocat"


def test_checkout_create(client: TestClient, make_analysis, fake_paddle, db):
    record = make_analysis()
    r = client.post("/api/checkout/create", json={"analysis_id": record.uuid})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["session_id"] == "txn_test_1"
    assert "transaction_id=txn_test_1" in data["checkout_url"]
    assert db.exec(select(PaymentRecord)).one().provider_transaction_id == "txn_test_1"


def test_checkout_create_errors(client: TestClient, make_analysis, fake_paddle):
    r = client.post("/api/checkout/create", json={"analysis_id": "missing"})
    assert r.status_code == 404

    paid = make_analysis(is_paid=True)
    r = client.post("/api/checkout/create", json={"analysis_id": paid.uuid})
    assert r.status_code == 400
    assert r.json()["error"] == "Analysis is already paid."

    pending = make_analysis(status=AnalysisStatus.PROCESSING)
    r = client.post("/api/checkout/create", json={"analysis_id": pending.uuid})
    assert r.status_code == 400
    assert r.json()["error"] == "Analysis must be completed before checkout."

    fake_paddle.fail = True
    r = client.post("/api/checkout/create", json={"analysis_id": make_analysis().uuid})
    assert r.status_code == 502
    assert r.json()["error"].startswith("Failed to create checkout session")


def test_checkout_verify(client: TestClient, fake_paddle):
    assert client.get("/api/checkout/verify/txn_1").json() == {"data": {"is_paid": True}}
    fake_paddle.status = "past_due"
    assert client.get("/api/checkout/verify/txn_1").json() == {"data": {"is_paid": False}}


def test_webhook_unlocks_full_report(client: TestClient, make_analysis):
    record = make_analysis()
    client.post("/api/checkout/create", json={"analysis_id": record.uuid})
    payload = json.dumps({"event_type": "transaction.completed", "data": {"id": "txn_test_1"}}).encode()

    r = client.post(
        "/api/webhooks/paddle",
        content=payload,
        headers={"Paddle-Signature": sign_payload(payload, WEBHOOK_SECRET, int(time.time()))},
    )
    assert r.status_code == 200
    assert r.json() == {"status": "success"}
    assert client.get(f"/api/analysis/{record.uuid}/full").status_code == 200


def test_webhook_rejects_bad_signature(client: TestClient, make_analysis):
    record = make_analysis()
    payload = json.dumps({"event_type": "transaction.completed", "data": {"id": "txn_test_1"}}).encode()
    r = client.post("/api/webhooks/paddle", content=payload, headers={"Paddle-Signature": "ts=1;h1=forged"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid webhook signature"
    r = client.post("/api/webhooks/paddle", content=payload)
    assert r.status_code == 400
    assert client.get(f"/api/analysis/{record.uuid}/full").status_code == 402


def test_webhook_acknowledges_garbage(client: TestClient):
    payload = b"not json"
    r = client.post(
        "/api/webhooks/paddle",
        content=payload,
        headers={"Paddle-Signature": sign_payload(payload, WEBHOOK_SECRET, int(time.time()))},
    )
    assert r.status_code == 200


def test_responses_carry_request_id(client: TestClient):
    r = client.get("/api/analysis/unknown")
    assert r.headers["X-Request-ID"]
    assert r.json()["request_id"] == r.headers["X-Request-ID"]
