from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from medsupply.core.config import get_settings

settings = get_settings()

# Read-only engine over the supply tables owned by the upstream services
engine = create_engine(
    str(settings.database_url),
    future=True,
    pool_pre_ping=True,
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a DB session.

    Report endpoints only read, so the session is closed without commit.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
