"""Database engine, session factory and declarative base"""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from assetguard.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
        "pool_recycle": settings.DATABASE_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def revocation_engine_kwargs(url: str) -> dict:
    """Engine options for revocation lookups, bounded by ``REVOCATION_TIMEOUT_MS``.

    The pool wait, the SQLite busy wait and the Postgres statement timeout all
    give up after the revocation timeout, so a saturated or slow database
    fails the lookup quickly instead of holding the request.
    """
    timeout = settings.revocation_timeout_seconds
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}

    kwargs = {
        "pool_size": settings.REVOCATION_POOL_SIZE,
        "max_overflow": settings.REVOCATION_POOL_SIZE,
        "pool_timeout": timeout,
        "pool_recycle": settings.DATABASE_POOL_RECYCLE,
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql"):
        kwargs["connect_args"] = {
            "connect_timeout": 2,  # libpq minimum
            "options": f"-c statement_timeout={settings.REVOCATION_TIMEOUT_MS}",
        }
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Separate small pool: revocation checks run on every request and must not
# queue behind request sessions
revocation_engine = create_engine(settings.DATABASE_URL, **revocation_engine_kwargs(settings.DATABASE_URL))
RevocationSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=revocation_engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Yield one session per request and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_revocation_db() -> Generator[Session, None, None]:
    """Session on the revocation pool, one per request."""
    db = RevocationSessionLocal()
    try:
        yield db
    finally:
        db.close()
