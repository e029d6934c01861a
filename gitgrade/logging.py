"""
Logging for the API process and the analysis worker.
Both call setup_logging once at startup; modules log through logging.getLogger(__name__).
"""
import logging
import sys

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Client libraries log every HTTP request at INFO; one line per analysis step is enough
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        return logging.getLevelName(level.strip().upper()) if level.strip() else logging.INFO
    return level


def setup_logging(level: int | str = logging.INFO, format_string: str | None = None) -> None:
    resolved = _resolve_level(level)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(
        level=resolved,
        format=format_string or DEFAULT_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "gitgrade"):
        logging.getLogger(name).setLevel(resolved)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
