"""GitHub REST API client (users, repos, READMEs, public events)."""
import json
import logging
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from gitgrade.core.config import settings
from gitgrade.core.errors import (
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubTransportError,
    ProfileNotFoundError,
)

logger = logging.getLogger(__name__)


class GitHubClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        api_version: str | None = None,
    ):
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.token = settings.github_token if token is None else token
        self.timeout = timeout or settings.github_timeout_seconds
        self.api_version = api_version or settings.github_api_version

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.api_version,
            "User-Agent": "gitgrade",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        if params:
            url += "?" + urlencode(params)
        req = Request(url, headers=self._headers(), method="GET")
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except HTTPError as e:
            if e.code == 404:
                raise GitHubNotFoundError(f"GitHub resource not found: {path}", 404) from e
            if e.code in (403, 429):
                raise GitHubRateLimitError("GitHub API rate limit exceeded", e.code) from e
            raise GitHubTransportError(f"GitHub API returned HTTP {e.code} for {path}", e.code) from e
        except (URLError, OSError, ValueError) as e:
            raise GitHubTransportError(f"GitHub request failed: {e}") from e

    def get_user(self, username: str) -> dict[str, Any]:
        try:
            return self._get(f"/users/{quote(username)}")
        except GitHubNotFoundError as e:
            raise ProfileNotFoundError(f"GitHub user '{username}' not found", 404) from e

    def get_repositories(self, username: str, per_page: int = 30, sort: str = "updated") -> list[dict[str, Any]]:
        data = self._get(
            f"/users/{quote(username)}/repos",
            {"per_page": per_page, "sort": sort, "direction": "desc", "type": "owner"},
        )
        return data if isinstance(data, list) else []

    def get_readme(self, owner: str, repo: str) -> str | None:
        """Base64 README content, or None when the repo has no README."""
        try:
            data = self._get(f"/repos/{quote(owner)}/{quote(repo)}/readme")
        except GitHubNotFoundError:
            return None
        content = data.get("content") if isinstance(data, dict) else None
        return content if isinstance(content, str) else None

    def get_public_events(self, username: str) -> list[dict[str, Any]]:
        data = self._get(f"/users/{quote(username)}/events/public", {"per_page": 100})
        return data if isinstance(data, list) else []
