"""Shared dependencies: database sessions and process-wide collaborators."""

from functools import lru_cache
from typing import Generator

from sqlalchemy.orm import Session

from intake.core.cache import TTLCache
from intake.core.config import settings
from intake.db.session import SessionLocal
from intake.services.client_service import ClientService
from intake.services.dispatch import BackgroundDispatcher


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed afterwards.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_cache() -> TTLCache:
    """The process-local cache shared by every service built here."""
    return TTLCache(ttl_seconds=settings.CACHE_TTL_SECONDS)


@lru_cache
def get_dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


def build_client_service(db: Session) -> ClientService:
    """ClientService wired with the process-wide cache and dispatcher."""
    return ClientService(
        db,
        cache=get_cache(),
        dispatcher=get_dispatcher(),
        config=settings,
    )
