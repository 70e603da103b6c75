"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Account store table definitions
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Numeric, Index, ForeignKey, UniqueConstraint, text
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from classia.core.config import settings


logger = logging.getLogger(__name__)

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
        # Worker threads share pooled connections; sqlite waits on locked writes
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )
    else:
        # Create engine with connection pooling
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


def supports_row_locks() -> bool:
    """SELECT ... FOR UPDATE is a no-op on sqlite, real on PostgreSQL."""
    return get_engine().dialect.name != "sqlite"


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Commits on clean exit, rolls back on any exception.

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


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Accounts: plan, quota counter and subscription window per user
accounts = Table(
    'accounts',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('email', String(320), nullable=False),
    Column('name', Text, nullable=False),
    Column('plan_tier', String(30), nullable=False, server_default='free'),
    Column('quota_used', Integer, nullable=False, server_default='0'),
    Column('subscription_status', String(30), nullable=False, server_default='none'),
    Column('subscription_plan', String(30), nullable=True),
    Column('subscription_start', DateTime(timezone=True), nullable=True),
    Column('subscription_end', DateTime(timezone=True), nullable=True),
    Column('external_customer_id', String(100), nullable=True, unique=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_accounts_quota_used', 'quota_used'),
)

# Transactions: one row per payment attempt, keyed by the processor payment id
transactions = Table(
    'transactions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('account_id', String(100), ForeignKey('accounts.id'), nullable=False, index=True),
    Column('external_payment_id', String(100), nullable=False, unique=True),
    Column('plan', String(30), nullable=False),
    Column('amount', Numeric(10, 2), nullable=False),
    Column('status', String(50), nullable=False, server_default='pending'),
    Column('external_reference', String(200), nullable=True),
    # Set when this payment activated a subscription; a second confirmation is a no-op
    Column('applied_event_key', String(200), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_transactions_account_created', 'account_id', 'created_at'),
)

# Exam artifacts: immutable output of one successful generation
exam_artifacts = Table(
    'exam_artifacts',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('account_id', String(100), ForeignKey('accounts.id'), nullable=False, index=True),
    Column('title', Text, nullable=False),
    Column('theme', Text, nullable=True),
    Column('grade', String(100), nullable=True),
    Column('question_count', Integer, nullable=False),
    Column('type', String(30), nullable=False),
    Column('content', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_exam_artifacts_account_created', 'account_id', 'created_at'),
    Index('idx_exam_artifacts_created_at', 'created_at'),
)

# Billing events (webhook delivery ledger)
billing_events = Table(
    'billing_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('event_key', String(200), nullable=False),
    Column('event_type', String(100), nullable=False, index=True),
    Column('external_payment_id', String(100), nullable=True, index=True),
    Column('payload_hash', String(64), nullable=False),  # SHA256 of the raw body
    Column('received_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('processed', Boolean, nullable=False, server_default=text('false'), index=True),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Column('error', Text, nullable=True),
    UniqueConstraint('event_key', name='uq_billing_events_event_key'),
    Index('idx_billing_events_received_at', 'received_at'),
)
