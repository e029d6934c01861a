import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable

from openai import APIConnectionError, APIError, AuthenticationError, OpenAI, RateLimitError

from gitgrade.core.config import get_openai_keys, settings
from gitgrade.core.errors import AIResponseParseError, AIResponseValidationError, AITransportError
from gitgrade.schemas.profile import ProfileSnapshot

logger = logging.getLogger(__name__)
OPENAI_RETRY_WAIT = 1.5
OPENAI_RETRY_ONCE = (RateLimitError, APIConnectionError)
# Auth/limit failure on one key moves on to the next key
OPENAI_FALLBACK_EXCEPTIONS = (AuthenticationError, RateLimitError)

PROFILE_README_MAX_CHARS = 2000
REQUIRED_FIELDS = ("overall_score", "categories", "deal_breakers")
REPORT_FIELDS = (
    "summary",
    "first_impression",
    "categories",
    "deal_breakers",
    "top_projects_analysis",
    "improvement_checklist",
    "strengths",
    "recruiter_perspective",
)

SYSTEM_PROMPT = """You are a senior technical recruiter and engineering hiring manager with 15 years of experience reviewing developer profiles at top tech companies.

Your task is to analyze a GitHub profile and provide brutally honest, actionable feedback.

Return ONLY valid JSON with this exact structure:

{
  "overall_score": <0-100>,
  "summary": "<2-3 sentence overall assessment>",
  "first_impression": "<What a recruiter thinks in the first 5 seconds>",
  "categories": {
    "profile_completeness": {
      "score": <0-100>,
      "issues": ["<issue 1>"],
      "recommendations": ["<specific fix>"],
      "details": "<paragraph explanation>"
    },
    "project_quality": { "score": <0-100>, "issues": [], "recommendations": [], "details": "" },
    "contribution_consistency": { "score": <0-100>, "issues": [], "recommendations": [], "details": "" },
    "technical_signals": { "score": <0-100>, "issues": [], "recommendations": [], "details": "" },
    "community_engagement": { "score": <0-100>, "issues": [], "recommendations": [], "details": "" }
  },
  "deal_breakers": [
    { "issue": "<critical issue>", "why_it_matters": "<why recruiters care>", "fix": "<how to fix>" }
  ],
  "top_projects_analysis": [
    {
      "repo_name": "<name>",
      "score": <0-100>,
      "strengths": ["<strength>"],
      "weaknesses": ["<weakness>"],
      "readme_quality": "<poor|basic|good|excellent>",
      "recommendations": ["<improvement>"]
    }
  ],
  "improvement_checklist": [
    { "priority": "<high|medium|low>", "task": "<action>", "time_estimate": "<e.g., 10 minutes>", "impact": "<result>" }
  ],
  "strengths": ["<genuine strength>"],
  "recruiter_perspective": "<What a recruiter would say in an internal meeting>"
}

SCORING: 90-100=Exceptional, 80-89=Strong, 70-79=Good, 60-69=Average, 50-59=Below average, <50=Poor

Be specific, honest, and actionable. Do not inflate scores."""


class OpenAIClient:
    """complete(system, user) -> text, trying each configured key in turn."""

    def __init__(self, model: str | None = None, timeout: float | None = None, max_tokens: int | None = None):
        self.model = model or settings.openai_model
        self.timeout = timeout or settings.ai_timeout_seconds
        self.max_tokens = max_tokens or settings.openai_max_tokens
        self._clients: dict[str, OpenAI] = {}

    def _client_for_key(self, key: str) -> OpenAI:
        if key not in self._clients:
            self._clients[key] = OpenAI(api_key=key, timeout=self.timeout)
        return self._clients[key]

    def _create_with_fallback(self, create_fn: Callable[[OpenAI], Any]) -> Any:
        keys = get_openai_keys()
        if not keys:
            raise AITransportError("OPENAI_API_KEY is not set or invalid. Add OPENAI_API_KEY=sk-... or OPENAI_API_KEYS=sk-1,sk-2 to .env.")
        last_exc: Exception | None = None
        for key in keys:
            try:
                return create_fn(self._client_for_key(key))
            except OPENAI_FALLBACK_EXCEPTIONS as e:
                last_exc = e
                logger.warning("OpenAI key skipped (%s), trying next: %s", key[:12] + "...", e)
                continue
        raise AITransportError(f"All OpenAI keys failed: {last_exc}") from last_exc

    @staticmethod
    def _safe_call(create_fn: Callable[[], Any]) -> Any:
        """One retry after 1.5 s on RateLimitError/APIConnectionError."""
        try:
            return create_fn()
        except OPENAI_RETRY_ONCE as e:
            logger.warning("OpenAI retry after %s: %s", type(e).__name__, e)
            time.sleep(OPENAI_RETRY_WAIT)
            return create_fn()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        def _create(client: OpenAI):
            return self._safe_call(lambda: client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            ))

        try:
            response = self._create_with_fallback(_create)
        except APIError as e:
            logger.exception("OpenAI API error: %s", e)
            raise AITransportError(f"AI request failed: {e}") from e
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AITransportError("Empty response from AI")
        return content


def _account_age_days(created_at: str | None, now: datetime) -> int:
    if not created_at:
        return 0
    try:
        created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return 0
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return max(0, (now - created).days)


def build_prompt(profile: ProfileSnapshot, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    profile_json = json.dumps(
        {
            "username": profile.username,
            "name": profile.name,
            "bio": profile.bio,
            "location": profile.location,
            "blog": profile.blog,
            "company": profile.company,
            "twitter": profile.twitter_username,
            "public_repos": profile.public_repos,
            "followers": profile.followers,
            "following": profile.following,
            "account_age_days": _account_age_days(profile.created_at, now),
        },
        indent=4,
    )
    repos_json = json.dumps(
        [
            {
                "name": repo.name,
                "description": repo.description,
                "language": repo.language,
                "stars": repo.stargazers_count,
                "forks": repo.forks_count,
                "topics": repo.topics,
                "has_readme": bool(repo.readme),
                "readme_length": len(repo.readme or ""),
                "last_pushed": repo.pushed_at,
            }
            for repo in profile.repositories
        ],
        indent=4,
    )
    readme = profile.profile_readme[:PROFILE_README_MAX_CHARS] if profile.profile_readme else "No profile README found"
    return (
        "Analyze this GitHub profile:\n\n"
        f"Username: {profile.username}\n\n"
        f"Profile Data:\n{profile_json}\n\n"
        f"Repositories (top by stars and recent activity):\n{repos_json}\n\n"
        f"Profile README:\n{readme}\n\n"
        "Provide your analysis in the exact JSON format specified in the system prompt."
    )


_FENCE_OPEN = re.compile(r"```json\s*")
_FENCE = re.compile(r"```\s*")


def parse_response(content: str) -> dict[str, Any]:
    """AI text -> dict. Tolerates ```json fences; requires overall_score, categories, deal_breakers."""
    cleaned = _FENCE.sub("", _FENCE_OPEN.sub("", content or "")).strip()
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        logger.warning("Failed to parse AI response as JSON: %s (content=%r)", e, cleaned[:500])
        raise AIResponseParseError(f"Failed to parse AI response: {e}") from e
    if not isinstance(data, dict):
        raise AIResponseParseError("AI response is not a JSON object")
    for field in REQUIRED_FIELDS:
        if data.get(field) is None:
            raise AIResponseValidationError(f"Missing required field: {field}")
    return data


class AIAnalysisService:
    def __init__(self, client: Any | None = None):
        self.client = client or OpenAIClient()

    def analyze(self, profile: ProfileSnapshot) -> dict[str, Any]:
        """Full AI result for profile; raises AITransportError or AIResponseParseError."""
        content = self.client.complete(SYSTEM_PROMPT, build_prompt(profile))
        return parse_response(content)


def report_from_result(result: dict[str, Any]) -> dict[str, Any]:
    """Narrative fields persisted as AnalysisRecord.ai_analysis."""
    return {field: result.get(field) for field in REPORT_FIELDS}
