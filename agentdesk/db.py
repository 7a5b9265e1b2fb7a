"""
Database plumbing for Agent Desk CRM.

Holds the declarative base shared by every model, a timezone-safe datetime
column type and helpers for building engines and sessions.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy import DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.types import TypeDecorator

from .config import get_config

logger = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator):
    """DateTime column that always stores and returns aware UTC values.

    SQLite keeps no timezone information, so values come back naive. This
    type normalises on the way in and re-attaches UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: Optional[datetime], dialect: Any
    ) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(
        self, value: Optional[datetime], dialect: Any
    ) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all CRM models."""


def create_db_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    Args:
        url: Database URL, defaults to the configured ``database_url``
        echo: Echo SQL statements

    Returns:
        Engine instance
    """
    url = url or get_config().database_url
    logger.debug("Creating database engine for %s", url)
    return create_engine(url, echo=echo, future=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Return a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """
    Create all tables and register the soft delete guards.

    Args:
        engine: Engine to create the schema on
    """
    # Importing models registers them on Base.metadata
    from . import models  # noqa: F401
    from .soft_delete.mixins import register_soft_delete_listeners

    Base.metadata.create_all(engine)
    register_soft_delete_listeners(Base)
    logger.info("Initialised database schema (%d tables)", len(Base.metadata.tables))


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits when the block finishes, rolls back and re-raises on error.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
