"""GitHub profile snapshot: user, ranked repositories, READMEs, recent events (cached per username)."""
import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from gitgrade.core.cache import TTLCache
from gitgrade.core.config import settings
from gitgrade.core.errors import GitHubError
from gitgrade.integrations.github import GitHubClient
from gitgrade.schemas.profile import ProfileSnapshot, RepositorySnapshot

logger = logging.getLogger(__name__)

REPOS_PER_PAGE = 30
MAX_RANKED_REPOS = 15
README_REPO_LIMIT = 6  # only the top ranked repos get a README lookup
README_MAX_CHARS = 3000
RECENT_PUSH_DAYS = 90
RECENT_PUSH_BONUS = 10

# Shared by every fetcher built without an explicit cache (one per worker process)
profile_cache = TTLCache(settings.profile_cache_ttl_seconds)


def _str_or_none(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _int(data: dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ranking_score(repo: dict[str, Any], now: datetime) -> int:
    """stars * 2, plus 10 if pushed within the last 90 days."""
    score = _int(repo, "stargazers_count") * 2
    pushed_at = _parse_timestamp(_str_or_none(repo, "pushed_at"))
    if pushed_at is not None and pushed_at > now - timedelta(days=RECENT_PUSH_DAYS):
        score += RECENT_PUSH_BONUS
    return score


def rank_repositories(repos: list[dict[str, Any]], now: datetime | None = None) -> list[dict[str, Any]]:
    """Non-fork repos by ranking score, highest first; ties keep API order. Top 15."""
    now = now or datetime.now(timezone.utc)
    candidates = [r for r in repos if isinstance(r, dict) and not r.get("fork")]
    ranked = sorted(candidates, key=lambda r: ranking_score(r, now), reverse=True)
    return ranked[:MAX_RANKED_REPOS]


def decode_readme(content: str | None) -> str | None:
    if not content:
        return None
    try:
        return base64.b64decode(content).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


class ProfileFetcher:
    def __init__(
        self,
        client: GitHubClient | None = None,
        cache: TTLCache | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.client = client or GitHubClient()
        self.cache = cache if cache is not None else profile_cache
        self._now = now or (lambda: datetime.now(timezone.utc))

    def fetch(self, username: str) -> ProfileSnapshot:
        """
        Snapshot for username; repeated calls within the cache TTL skip GitHub entirely.
        Raises ProfileNotFoundError, GitHubRateLimitError or GitHubTransportError when the
        user or repository list cannot be fetched; README and event lookups never raise.
        """
        return self.cache.remember(f"github:profile:{username}", lambda: self._fetch(username))

    def _fetch(self, username: str) -> ProfileSnapshot:
        user = self.client.get_user(username)
        repos = self.client.get_repositories(username, per_page=REPOS_PER_PAGE)
        login = _str_or_none(user, "login") or username

        profile_readme = self._readme(login, login)
        events = self._events(login)
        repositories = self._repositories(login, rank_repositories(repos, self._now()))

        logger.info(
            "GitHub snapshot fetched: username=%s repos=%s ranked=%s events=%s",
            login,
            len(repos),
            len(repositories),
            len(events),
        )
        return ProfileSnapshot(
            username=login,
            name=_str_or_none(user, "name"),
            bio=_str_or_none(user, "bio"),
            avatar_url=_str_or_none(user, "avatar_url"),
            location=_str_or_none(user, "location"),
            blog=_str_or_none(user, "blog"),
            company=_str_or_none(user, "company"),
            twitter_username=_str_or_none(user, "twitter_username"),
            public_repos=_int(user, "public_repos"),
            followers=_int(user, "followers"),
            following=_int(user, "following"),
            created_at=_str_or_none(user, "created_at"),
            profile_readme=profile_readme,
            repositories=repositories,
            events=events,
        )

    def _repositories(self, owner: str, ranked: list[dict[str, Any]]) -> list[RepositorySnapshot]:
        result = []
        for index, repo in enumerate(ranked):
            name = _str_or_none(repo, "name") or ""
            readme = None
            if index < README_REPO_LIMIT and name:
                readme = self._readme(owner, name)
            license_data = repo.get("license")
            license_name = None
            if isinstance(license_data, dict):
                license_name = _str_or_none(license_data, "name")
            topics = repo.get("topics")
            result.append(
                RepositorySnapshot(
                    name=name,
                    description=_str_or_none(repo, "description"),
                    language=_str_or_none(repo, "language"),
                    stargazers_count=_int(repo, "stargazers_count"),
                    forks_count=_int(repo, "forks_count"),
                    open_issues_count=_int(repo, "open_issues_count"),
                    created_at=_str_or_none(repo, "created_at"),
                    updated_at=_str_or_none(repo, "updated_at"),
                    pushed_at=_str_or_none(repo, "pushed_at"),
                    topics=[t for t in topics if isinstance(t, str)] if isinstance(topics, list) else [],
                    license=license_name,
                    is_fork=bool(repo.get("fork", False)),
                    readme=readme[:README_MAX_CHARS] if readme is not None else None,
                )
            )
        return result

    def _readme(self, owner: str, repo: str) -> str | None:
        try:
            return decode_readme(self.client.get_readme(owner, repo))
        except GitHubError as e:
            logger.debug("README skipped for %s/%s: %s", owner, repo, e)
            return None

    def _events(self, username: str) -> list[dict[str, Any]]:
        try:
            return self.client.get_public_events(username)
        except GitHubError as e:
            logger.warning("Public events unavailable for %s: %s", username, e)
            return []
