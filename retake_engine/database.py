"""Database configuration and session management."""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from retake_engine.config import DATABASE_URL

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """Create an engine configured for the database type in ``url``."""
    if url.startswith("sqlite"):
        # SQLite-specific config
        return create_engine(url, connect_args={"check_same_thread": False})
    # PostgreSQL config (production)
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None) -> None:
    """Create all tables. Imports the model modules so they register with Base."""
    from retake_engine.models import audit, directory, domain  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"Database initialized: {str(bind.url).split('?')[0]}")


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
