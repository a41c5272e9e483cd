"""Canonical store engine and sessions.

WHAT:
    Engine + session factory for the canonical catalog tables, a request
    scoped session for FastAPI routes and a context manager for the sweep
    worker and the write-triggered sync dispatcher.

WHY:
    Both entry points share one engine per process. SQLite is accepted for
    tests and local runs; production uses PostgreSQL through psycopg2.

USAGE:
    from catalog_sync.database import get_db, get_sync_session

    @router.post("/import/{platform}")
    async def run_import(db: Session = Depends(get_db)):
        ...

    with get_sync_session() as db:
        repo = SqlAlchemyCanonicalRepository(db)

REFERENCES:
    - catalog_sync/services/repository.py (the only code that queries)
"""

import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Resolve DATABASE_URL, falling back to backend/.env for local runs.

    Raises:
        RuntimeError: If DATABASE_URL is not configured anywhere
    """
    if not os.getenv("DATABASE_URL"):
        from catalog_sync.utils.env import load_env_file
        load_env_file()

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set (export it or add it to backend/.env)")

    # Managed Postgres providers still hand out the legacy scheme
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    return database_url


def _engine_kwargs(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Webhook handlers and the sync dispatcher use sessions from other threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


DATABASE_URL = _get_database_url()

engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

from .models import Base  # noqa: E402


def init_db() -> None:
    """Create any missing catalog tables; existing tables are left untouched."""
    Base.metadata.create_all(bind=engine)
    logger.info(f"[DATABASE] Schema ready ({engine.url.get_backend_name()})")


# =============================================================================
# SESSIONS
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Session for code running outside a request (cron sweep, dispatch).

    The repository commits its own writes; anything left pending when the
    block raises is rolled back.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
