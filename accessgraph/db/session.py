"""Engine and session factory for the relationship store."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from accessgraph.core.config import get_settings

settings = get_settings()


def build_engine(database_url: str, timeout_seconds: float):
    """Create an engine with the store I/O timeout applied."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args={"connect_timeout": int(timeout_seconds)},
    )


engine = build_engine(settings.database_url, settings.store_timeout_seconds)
# Store reads return detached rows, so attributes must survive commit
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
