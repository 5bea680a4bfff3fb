"""Database connection and session factory.

Datetime columns use UTCDateTime so values loaded back (SQLite drops the
offset) stay UTC-aware and cache timestamps compare cleanly against
proposal update times.
"""

from datetime import timezone

from sqlalchemy import DateTime, TypeDecorator, create_engine
from sqlalchemy.orm import sessionmaker

from .config import settings


class UTCDateTime(TypeDecorator):
    """DateTime type that ensures UTC timezone on load."""
    impl = DateTime
    cache_ok = True

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def create_tables() -> None:
    from .models import Base

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
