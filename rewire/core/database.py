"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (skipped for SQLite)
- Test database support via TEST_DATABASE_URL
- Table definitions for the meter
"""
from typing import Optional
from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Float, Text, Index, ForeignKey
from sqlalchemy.types import TypeDecorator
from sqlalchemy.engine import make_url
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from rewire.core.config import settings

logger = logging.getLogger("rewire")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_engine_url: Optional[str] = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _engine_url, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if make_url(url).get_backend_name() == "sqlite":
        # In-memory SQLite needs one shared connection to keep its tables
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )
    _engine_url = url

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine, rebuilding it if the URL changed."""
    if _engine is None or _engine_url != get_database_url():
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    get_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Drop the cached engine (tests switch databases between cases)."""
    global _engine, _engine_url, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class UtcDateTime(TypeDecorator):
    """
    Timestamp stored as UTC and always read back timezone-aware.

    SQLite keeps no offset, so values are normalized to UTC on the way in;
    stored text then sorts chronologically and reads back as UTC.
    Naive values are taken to be UTC already.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)
    logger.info("database.tables_ready", extra={"tables": ",".join(sorted(metadata.tables))})


# Users with their latest meter snapshot
meter_users = Table(
    'meter_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('rewire_progress', Float, nullable=False, server_default='0'),
    Column('skill_level', String(20), nullable=True),  # NULL until first computation
    Column('current_streak', Integer, nullable=False, server_default='0'),
    # Bumped on every write; compare-and-set guard for concurrent computations
    Column('version', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', UtcDateTime(), nullable=True),
)

# One row per completed protocol instance
protocol_completions = Table(
    'protocol_completions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('meter_users.user_id'), nullable=False),
    Column('title', Text, nullable=True),
    Column('completed_at', UtcDateTime(), nullable=True),  # NULL = not completed yet
    # Composite index for the newest-first history scan
    Index('idx_protocol_completions_user_completed', 'user_id', 'completed_at'),
)

# Level transitions, written after the winning state update
rewire_events = Table(
    'rewire_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('meter_users.user_id'), nullable=False, index=True),
    Column('event_type', String(50), nullable=False),
    Column('old_value', Integer, nullable=False),
    Column('new_value', Integer, nullable=False),
    Column('occurred_at', UtcDateTime(), nullable=False),
    Index('idx_rewire_events_user_occurred', 'user_id', 'occurred_at'),
)
