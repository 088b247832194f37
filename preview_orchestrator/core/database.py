"""
Database Configuration
SQLAlchemy engine and session factory for the PreviewStore.
Supports both SQLite (local dev) and PostgreSQL (production).
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for models
Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Create a database engine with settings appropriate for the backend."""
    if database_url.startswith("sqlite"):
        # SQLite settings
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},  # Workers and API threads share it
        )

    # PostgreSQL settings
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    from preview_orchestrator.models import Preview  # noqa
    Base.metadata.create_all(bind=engine)
