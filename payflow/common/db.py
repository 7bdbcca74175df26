"""Engine and session factory for the payment store."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from payflow.common.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine for PostgreSQL in production or SQLite in development.

    SQLite connections are shared with FastAPI's worker threads, and an
    in-memory database lives on a single pooled connection so every session
    sees the same tables.
    """

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)
    if url.database in (None, "", ":memory:"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, connect_args={"check_same_thread": False})


def build_session_factory(bind: Engine) -> sessionmaker:
    # Payments are returned to callers after the unit of work closes.
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for payment tables."""
