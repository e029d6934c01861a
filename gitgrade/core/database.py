from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _normalized_database_url(raw_url: str) -> str:
    """
    DATABASE_URL normalization:
    - postgres:// or postgresql:// without a driver -> psycopg3 dialect.
    - Anything else (SQLite etc.) is left untouched.
    """
    if not raw_url:
        return "sqlite:///./gitgrade.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


DATABASE_URL = _normalized_database_url(settings.database_url)

# In-memory SQLite: one shared connection so tables created by init_db are visible everywhere (tests)
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
_use_static_pool = DATABASE_URL.startswith("sqlite") and ":memory:" in DATABASE_URL
engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args,
    poolclass=StaticPool if _use_static_pool else None,
    pool_pre_ping=not _use_static_pool,
)


def utc_now() -> datetime:
    """Current time, timezone-aware UTC (SQLModel datetime columns reject naive values)."""
    return datetime.now(timezone.utc)


def ping() -> None:
    """Round trip to the database; raises when it is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def get_db():
    with Session(engine) as session:
        yield session


def init_db():
    # Table classes must be imported before create_all sees them
    from gitgrade import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
