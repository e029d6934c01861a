"""Prompt building and AI response parsing."""
import json
from datetime import datetime, timezone

import pytest

from conftest import FakeAIClient, ai_result
from gitgrade.core.errors import AIResponseParseError, AIResponseValidationError
from gitgrade.schemas import ProfileSnapshot, RepositorySnapshot
from gitgrade.services.ai_analysis import (
    SYSTEM_PROMPT,
    AIAnalysisService,
    build_prompt,
    parse_response,
    report_from_result,
)


def _snapshot(**overrides):
    data = {
        "username": "octocat",
        "name": "The Octocat",
        "created_at": "2024-01-01T00:00:00Z",
        "repositories": [
            RepositorySnapshot(name="hello", stargazers_count=4, readme="# Hello", pushed_at="2024-05-01T00:00:00Z")
        ],
    }
    data.update(overrides)
    return ProfileSnapshot(**data)


def test_build_prompt_includes_profile_and_repos():
    prompt = build_prompt(_snapshot(profile_readme="P" * 2500), now=datetime(2024, 1, 11, tzinfo=timezone.utc))
    assert prompt.startswith("Analyze this GitHub profile:")
    assert "Username: octocat" in prompt
    assert '"account_age_days": 10' in prompt
    assert '"has_readme": true' in prompt
    assert '"readme_length": 7' in prompt
    assert '"last_pushed": "2024-05-01T00:00:00Z"' in prompt
    assert "P" * 2000 in prompt
    assert "P" * 2001 not in prompt


def test_build_prompt_marks_missing_profile_readme():
    assert "No profile README found" in build_prompt(_snapshot())


def test_parse_response_strips_code_fences():
    text = "```json\n" + json.dumps(ai_result()) + "\n```"
    assert parse_response(text)["overall_score"] == 99


def test_parse_response_rejects_invalid_json():
    with pytest.raises(AIResponseParseError):
        parse_response("I think this profile is great!")


def test_parse_response_requires_fields():
    data = ai_result()
    del data["deal_breakers"]
    with pytest.raises(AIResponseValidationError):
        parse_response(json.dumps(data))


def test_parse_response_rejects_non_object():
    with pytest.raises(AIResponseParseError):
        parse_response("[1, 2, 3]")


def test_service_sends_system_prompt():
    client = FakeAIClient(json.dumps(ai_result()))
    result = AIAnalysisService(client=client).analyze(_snapshot())
    assert result["summary"].startswith("Solid")
    system_prompt, user_prompt = client.prompts[0]
    assert system_prompt == SYSTEM_PROMPT
    assert "octocat" in user_prompt


def test_report_from_result_keeps_narrative_fields():
    report = report_from_result(ai_result())
    assert "overall_score" not in report
    assert len(report["deal_breakers"]) == 5
    assert report["recruiter_perspective"] == "Worth a phone screen."
