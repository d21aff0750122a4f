"""
Engine, sessions and table definitions.

Every service operation runs inside one get_db_session() block, which is one
transaction. Streak state is stored as facts (daily logs and freeze events);
reading_streaks only holds freeze counters plus a display cache.
"""
import logging
import os
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool
from sqlalchemy.sql import func

from bookstreak.core.config import settings

logger = logging.getLogger("bookstreak")

metadata = MetaData()

POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_database_url() -> str:
    """TEST_DATABASE_URL wins over DATABASE_URL when set."""
    return os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL or settings.DATABASE_URL


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # Request threads share the file; SQLite serializes writers and waits up to POOL_TIMEOUT
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": POOL_TIMEOUT})
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
    )


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)bind the module engine and session factory, disposing any previous engine."""
    global _engine, _SessionLocal

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL is not configured")

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(url)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False)
    logger.info(f"Database engine bound ({_engine.dialect.name})")
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


@contextmanager
def get_db_session() -> Iterator[Session]:
    """
    One transaction: commit when the block exits cleanly, roll back otherwise.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    if _SessionLocal is None:
        init_engine()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    metadata.create_all(bind=get_engine())


def clear_all_tables() -> None:
    """Delete every row but keep the schema. Test helper."""
    with get_engine().begin() as conn:
        for table in reversed(metadata.sorted_tables):
            conn.execute(table.delete())


def missing_tables() -> List[str]:
    """
    Probe connectivity and return the names of tables not yet created.

    Raises whatever the driver raises when the database is unreachable.
    """
    engine = get_engine()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    inspector = inspect(engine)
    return [table.name for table in metadata.sorted_tables if not inspector.has_table(table.name)]


# Readers seen by the API (JWT subject or X-User-Id)
readers = Table(
    'readers',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('last_seen_at', DateTime(timezone=True), nullable=True),
)

# Per-reader goal configuration
goal_preferences = Table(
    'goal_preferences',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('daily_page_goal', Integer, nullable=False),
    Column('freeze_allowance', Integer, nullable=False),
    Column('timezone', String(64), nullable=False, server_default='UTC'),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# At most one row per reader per calendar day
daily_reading_logs = Table(
    'daily_reading_logs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('log_date', Date, nullable=False),
    Column('pages_read', Integer, nullable=False, server_default='0'),
    Column('duration_minutes', Integer, nullable=False, server_default='0'),
    Column('book_id', String(100), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('user_id', 'log_date', name='uq_daily_logs_user_date'),
    Index('idx_daily_logs_user_date', 'user_id', 'log_date'),
)

# Freeze counters and the last computed snapshot (display only)
reading_streaks = Table(
    'reading_streaks',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('current_streak', Integer, nullable=False, server_default='0'),
    Column('longest_streak', Integer, nullable=False, server_default='0'),
    Column('freezes_available', Integer, nullable=False, server_default='0'),
    Column('freezes_used', Integer, nullable=False, server_default='0'),
    Column('grants_applied', Integer, nullable=False, server_default='0'),
    Column('last_computed_date', Date, nullable=True),
    Column('created_on', Date, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Append-only; one freeze per reader per covered day
freeze_consumptions = Table(
    'freeze_consumptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('covered_date', Date, nullable=False),
    Column('consumed_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'covered_date', name='uq_freeze_user_date'),
    Index('idx_freeze_user', 'user_id'),
)
