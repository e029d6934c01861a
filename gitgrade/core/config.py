from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env lives at the project root: gitgrade/core/config.py -> gitgrade/core -> gitgrade -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

# A key only counts as configured when it looks like an OpenAI key
OPENAI_KEY_PREFIX = "sk-"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./gitgrade.db"
    environment: str = "development"
    log_level: str = "INFO"
    # CORS: comma-separated origins; "*" in development
    cors_origins: str = "*"
    # Per-IP requests per minute on public routes (SlowAPI)
    rate_limit_per_minute: int = 60
    # New analyses per IP per hour (database throttle)
    analysis_rate_limit_per_hour: int = 10

    # OpenAI: comma-separated OPENAI_API_KEYS wins over OPENAI_API_KEY; next key is tried on auth/limit errors
    openai_api_key: str = ""
    openai_api_keys: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 4096
    ai_timeout_seconds: float = 120.0

    # GitHub REST API; token is optional but raises the rate limit
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_api_version: str = "2022-11-28"
    github_timeout_seconds: float = 30.0
    profile_cache_ttl_seconds: int = 3600

    # Paddle Billing: one fixed price unlocks the full report
    paddle_api_key: str = ""
    paddle_sandbox: bool = False
    paddle_price_id: str = ""
    paddle_webhook_secret: str = ""  # empty = signature check skipped (local development only)
    paddle_webhook_tolerance_seconds: int = 5
    paddle_timeout_seconds: float = 20.0
    # Checkout redirects: success -> {frontend_url}/success, cancel -> {frontend_url}/analyze/<uuid>
    frontend_url: str = "http://127.0.0.1:3000"

    # Analysis queue
    job_max_attempts: int = 3
    job_backoff_seconds: str = "30,60,120"
    job_retry_window_minutes: int = 10
    job_timeout_seconds: int = 180
    worker_poll_seconds: int = 2

    # Retention sweep
    analysis_retention_days: int = 90
    throttle_retention_hours: int = 24

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("openai_api_key", "openai_api_keys", "github_token", "paddle_api_key", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Whitespace from copy/paste breaks auth headers."""
        return (v or "").strip()

    @property
    def backoff_schedule(self) -> list[int]:
        """JOB_BACKOFF_SECONDS as a list, e.g. "30,60,120" -> [30, 60, 120]."""
        values = [int(s.strip()) for s in self.job_backoff_seconds.split(",") if s.strip()]
        return values or [30]


settings = Settings()


def get_openai_keys() -> list[str]:
    """
    Valid OpenAI keys (prefixed with sk-, no whitespace).
    OPENAI_API_KEYS as a comma-separated list if set, otherwise OPENAI_API_KEY alone.
    """
    keys_raw = (settings.openai_api_keys or "").strip()
    if keys_raw:
        keys = [k.strip() for k in keys_raw.split(",") if k.strip() and k.strip().startswith(OPENAI_KEY_PREFIX)]
        if keys:
            return keys
    single = (settings.openai_api_key or "").strip()
    if single and single.startswith(OPENAI_KEY_PREFIX):
        return [single]
    return []


def is_openai_configured() -> bool:
    return len(get_openai_keys()) > 0


def is_paddle_configured() -> bool:
    return bool(settings.paddle_api_key and settings.paddle_price_id)
