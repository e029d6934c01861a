"""Pytest fixtures: in-memory SQLite, test client, fake GitHub / AI / Paddle collaborators."""
import base64
import json
import os

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

# In-memory SQLite for tests (must be set before gitgrade is imported)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-dummy")
# SlowAPI ceiling high enough that only the database throttle is exercised
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("PADDLE_API_KEY", "pdl_test_key")
os.environ.setdefault("PADDLE_PRICE_ID", "pri_test")
os.environ.setdefault("PADDLE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("PADDLE_SANDBOX", "true")
os.environ.setdefault("FRONTEND_URL", "https://gitgrade.test")

from sqlmodel import Session, SQLModel

from gitgrade.api.deps import get_payment_gateway
from gitgrade.core.database import engine, get_db, init_db
from gitgrade.core.errors import PaymentProviderError, ProfileNotFoundError
from gitgrade.core.rate_limit import limiter
from gitgrade.integrations.paddle import SANDBOX_CHECKOUT_URL
from gitgrade.main import app
from gitgrade.models import AnalysisRecord, AnalysisStatus
from gitgrade.services.payment import PaymentGateway
from gitgrade.services.profile_fetcher import profile_cache

WEBHOOK_SECRET = "whsec_test"


class FakeGitHubClient:
    """In-memory stand-in for GitHubClient; records every call."""

    def __init__(self, users=None, repos=None, readmes=None, events=None, errors=None):
        self.users = users or {}
        self.repos = repos or {}
        self.readmes = readmes or {}
        self.events = events or {}
        self.errors = errors or {}
        self.calls = []

    def _maybe_raise(self, name):
        if name in self.errors:
            raise self.errors[name]

    def get_user(self, username):
        self.calls.append(("get_user", username))
        self._maybe_raise("get_user")
        if username not in self.users:
            raise ProfileNotFoundError(f"GitHub user '{username}' not found", 404)
        return self.users[username]

    def get_repositories(self, username, per_page=30, sort="updated"):
        self.calls.append(("get_repositories", username, per_page, sort))
        self._maybe_raise("get_repositories")
        return self.repos.get(username, [])

    def get_readme(self, owner, repo):
        self.calls.append(("get_readme", owner, repo))
        self._maybe_raise("get_readme")
        text = self.readmes.get((owner, repo))
        return base64.b64encode(text.encode()).decode() if text is not None else None

    def get_public_events(self, username):
        self.calls.append(("get_public_events", username))
        self._maybe_raise("get_public_events")
        return self.events.get(username, [])


class FakeAIClient:
    """complete() returns queued responses in order (an Exception instance is raised instead)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, system_prompt, user_prompt):
        self.prompts.append((system_prompt, user_prompt))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakePaddleClient:
    checkout_url = SANDBOX_CHECKOUT_URL

    def __init__(self, status="completed", fail=False):
        self.status = status
        self.fail = fail
        self.created = []
        self._counter = 0

    def create_transaction(self, price_id, custom_data):
        if self.fail:
            raise PaymentProviderError("Paddle connection error: timed out")
        self._counter += 1
        transaction_id = f"txn_test_{self._counter}"
        self.created.append({"id": transaction_id, "price_id": price_id, "custom_data": custom_data})
        return {"id": transaction_id, "status": "ready"}

    def get_transaction(self, transaction_id):
        if self.fail:
            raise PaymentProviderError("Paddle API returned HTTP 404")
        return {"id": transaction_id, "status": self.status}


def github_user(login="octocat", **overrides):
    user = {
        "login": login,
        "name": "The Octocat",
        "bio": "Builds things",
        "avatar_url": f"https://avatars.githubusercontent.com/{login}",
        "location": "San Francisco",
        "blog": "https://octo.dev",
        "company": "@github",
        "twitter_username": None,
        "public_repos": 8,
        "followers": 120,
        "following": 3,
        "created_at": "2015-01-01T00:00:00Z",
    }
    user.update(overrides)
    return user


def github_repo(name, stars=0, pushed_at="2020-01-01T00:00:00Z", fork=False, **overrides):
    repo = {
        "name": name,
        "description": f"{name} description",
        "language": "Python",
        "stargazers_count": stars,
        "forks_count": 1,
        "open_issues_count": 0,
        "created_at": "2019-01-01T00:00:00Z",
        "updated_at": pushed_at,
        "pushed_at": pushed_at,
        "topics": ["cli"],
        "license": {"name": "MIT License"},
        "fork": fork,
    }
    repo.update(overrides)
    return repo


def ai_result(scores=(80, 70, 60, 90, 50), deal_breakers=5, strengths=5):
    keys = (
        "profile_completeness",
        "project_quality",
        "contribution_consistency",
        "technical_signals",
        "community_engagement",
    )
    return {
        "overall_score": 99,
        "summary": "Solid engineer with sparse documentation.",
        "first_impression": "Active but unpolished.",
        "categories": {
            key: {"score": score, "issues": [], "recommendations": [], "details": ""}
            for key, score in zip(keys, scores)
        },
        "deal_breakers": [
            {"issue": f"Issue {i}", "why_it_matters": "Recruiters notice", "fix": "Fix it"}
            for i in range(deal_breakers)
        ],
        "top_projects_analysis": [],
        "improvement_checklist": [
            {"priority": "high", "task": "Write a profile README", "time_estimate": "30 minutes", "impact": "High"}
        ],
        "strengths": [f"Strength {i}" for i in range(strengths)],
        "recruiter_perspective": "Worth a phone screen.",
    }


@pytest.fixture(autouse=True)
def _fresh_database():
    """Every test starts with empty tables and a fresh SlowAPI window."""
    init_db()
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    limiter.reset()
    profile_cache.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def fake_paddle():
    return FakePaddleClient()


@pytest.fixture
def client(fake_paddle):
    """TestClient with the Paddle API replaced by a fake."""

    def _gateway(session: Session = Depends(get_db)):
        return PaymentGateway(session, client=fake_paddle, webhook_secret=WEBHOOK_SECRET)

    app.dependency_overrides[get_payment_gateway] = _gateway
    with TestClient(app) as c:
        yield c


@pytest.fixture
def fake_github():
    return FakeGitHubClient(
        users={"octocat": github_user()},
        repos={"octocat": [github_repo("hello-world", stars=10), github_repo("spoon-knife", stars=3)]},
        readmes={("octocat", "octocat"): "# Hi there", ("octocat", "hello-world"): "# Hello World"},
    )


@pytest.fixture
def fake_ai():
    return FakeAIClient(json.dumps(ai_result()))


@pytest.fixture
def make_analysis(db):
    """Persist an AnalysisRecord; completed with a full report unless told otherwise."""

    def _make(status=AnalysisStatus.COMPLETED, is_paid=False, username="octocat", report=None, **fields):
        record = AnalysisRecord(github_username=username, status=status, is_paid=is_paid, **fields)
        if status == AnalysisStatus.COMPLETED:
            record.ai_analysis = report if report is not None else ai_result()
            record.overall_score = fields.get("overall_score", 71)
            for column in ("profile_score", "projects_score", "consistency_score", "technical_score", "community_score"):
                setattr(record, column, fields.get(column, 70))
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make
