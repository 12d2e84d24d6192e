"""
Database session configuration
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from cvfolio.app.core.config import settings


def _engine_kwargs(url: str) -> dict:
    """Connection timeouts so a stuck database surfaces as an error instead of a hang."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": settings.db_connect_timeout}}
    return {
        "connect_args": {"connect_timeout": settings.db_connect_timeout},
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
    }


engine = create_engine(settings.database_url, echo=False, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
