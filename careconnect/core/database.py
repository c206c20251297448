"""
Engine and sessions. One synchronous Session per request through get_db;
quota counters, documents and audit rows all go through the same engine.
"""
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings

logger = logging.getLogger(__name__)


def _normalized_database_url(raw_url: str) -> str:
    """postgres:// and driverless postgresql:// URLs use psycopg3; anything else is kept."""
    if not raw_url:
        return "sqlite:///./careconnect.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    # Sync endpoints run in a thread pool
    options: dict = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url:
        # One shared connection, so tables created by init_db are visible to every request
        options["poolclass"] = StaticPool
    return options


DATABASE_URL = _normalized_database_url(settings.database_url)
engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))


def get_db():
    with Session(engine) as session:
        yield session


def init_db():
    # Table classes register themselves on SQLModel.metadata when imported
    import careconnect.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def ping_db() -> bool:
    """Health check; the failure is logged, never raised."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning("Database ping failed: %s", e)
        return False
