from sqlmodel import SQLModel, create_engine
from sqlalchemy.engine import Engine
from typing import Any, Dict
import logging

from .core.config import settings

logger = logging.getLogger(__name__)


def engine_options(db_url: str, timeout_seconds: float = 10.0) -> Dict[str, Any]:
    """create_engine keyword arguments for the database scheme.

    Every store call made by a sweep unit is bounded by timeout_seconds: a
    hung connection fails that unit instead of pinning a worker thread.
    """
    if db_url.startswith("sqlite"):
        # Sweeper units run in worker threads, each with its own session;
        # timeout bounds the wait on a locked database file
        return {"connect_args": {"check_same_thread": False, "timeout": timeout_seconds}}
    # Better resiliency for managed Postgres
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": timeout_seconds,
        "connect_args": {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        },
    }


def build_engine(db_url: str, echo: bool = False, timeout_seconds: float = 10.0, **overrides) -> Engine:
    engine_kwargs = engine_options(db_url, timeout_seconds)
    engine_kwargs.update(overrides)
    return create_engine(db_url, echo=echo, **engine_kwargs)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG, timeout_seconds=settings.DB_TIMEOUT_SECONDS)


def create_db_and_tables(bind: Engine = None):
    # Import for side effects: registers every table on SQLModel.metadata
    from .db import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables ensured")
