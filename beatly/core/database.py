"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (in-memory SQLite)
- Table definitions for plans, subscriptions, transactions and listening history
- A dialect-aware insert-or-ignore primitive used for race-tolerant get-or-create
"""
import logging
from typing import Optional, Sequence, Dict, Any
from contextlib import contextmanager
from sqlalchemy import (
    create_engine, MetaData, Table, Column, Integer, String, Date, DateTime, Boolean, JSON, Text,
    Index, ForeignKey, CheckConstraint, text, select, false,
)
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import os

from beatly.core.config import settings

logger = logging.getLogger("beatly.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
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
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if _engine is not None:
        _engine.dispose()

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
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
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on clean exit, rolls back on any exception.
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


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)
    apply_schema_upgrades(engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def apply_schema_upgrades(engine=None) -> None:
    """Apply lightweight, idempotent schema upgrades.

    Existing Supabase projects were created without the expiry and
    gateway-status columns; add them in place and leave data intact.
    """
    eng = engine or get_engine()
    if eng.dialect.name != "postgresql":
        return
    with eng.connect() as conn:
        conn.execute(
            text(
                """
                ALTER TABLE user_subscriptions
                ADD COLUMN IF NOT EXISTS plan_expires_at TIMESTAMPTZ NULL;
                """
            )
        )
        conn.execute(
            text(
                """
                ALTER TABLE transactions
                ADD COLUMN IF NOT EXISTS gateway_status VARCHAR(50) NULL;
                """
            )
        )
        conn.commit()


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(select(1))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


def insert_ignore(
    session: Session,
    table: Table,
    values: Dict[str, Any],
    index_elements: Sequence[str],
) -> int:
    """
    INSERT ... ON CONFLICT (index_elements) DO NOTHING.

    Atomic at the store level: concurrent callers racing on the same key
    never raise and never create a second row. Returns the inserted row count
    (0 when the row already existed).
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    else:
        raise NotImplementedError(f"insert_ignore is not supported for dialect {dialect}")

    stmt = dialect_insert(table).values(**values).on_conflict_do_nothing(index_elements=list(index_elements))
    result = session.execute(stmt)
    return result.rowcount or 0


# Plans table (subscription tiers)
plans = Table(
    'plans',
    metadata,
    Column('id', String(50), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('price', Integer, nullable=False, server_default='0'),
    Column('daily_limit', Integer, nullable=False),
    Column('features', JSON, nullable=False, default=list),
    Column('duration_type', String(10), nullable=True),  # day | week | month | year
    Column('duration_value', Integer, nullable=True),
    Column('is_popular', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint('price >= 0', name='ck_plans_price_non_negative'),
    CheckConstraint('daily_limit >= 0', name='ck_plans_daily_limit_non_negative'),
    Index('idx_plans_price', 'price'),
)


# User subscriptions: exactly one row per user
user_subscriptions = Table(
    'user_subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, unique=True),
    Column('plan_id', String(50), ForeignKey('plans.id'), nullable=False),
    Column('daily_usage', Integer, nullable=False, server_default='0'),
    Column('last_reset_date', Date, nullable=True),
    Column('plan_expires_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint('daily_usage >= 0', name='ck_user_subscriptions_usage_non_negative'),
    # Index for finding all users on a plan / the expiry sweep
    Index('idx_user_subscriptions_plan_id', 'plan_id'),
    Index('idx_user_subscriptions_expires_at', 'plan_expires_at'),
)


# Payment transactions (id doubles as the Midtrans order_id)
transactions = Table(
    'transactions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), nullable=False),
    Column('plan_id', String(50), ForeignKey('plans.id'), nullable=False),
    Column('amount', Integer, nullable=False),
    Column('status', String(20), nullable=False, server_default='pending'),
    Column('snap_token', Text, nullable=True),
    Column('gateway_status', String(50), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint(
        "status IN ('pending', 'success', 'challenge', 'failed')",
        name='ck_transactions_status',
    ),
    Index('idx_transactions_user_created', 'user_id', 'created_at'),
    Index('idx_transactions_status', 'status'),
)


# Listening history (one row per resolved play)
listening_history = Table(
    'listening_history',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('track_id', String(100), nullable=False),
    Column('track_name', Text, nullable=False),
    Column('artist_name', Text, nullable=False),
    Column('album_name', Text, nullable=True),
    Column('album_image', Text, nullable=True),
    Column('played_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for per-user time-window stats
    Index('idx_listening_history_user_played', 'user_id', 'played_at'),
)
