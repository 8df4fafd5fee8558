"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine management
- Connection pooling with sane defaults
- Table definitions backing the document collections
"""
from typing import Optional
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
import logging
import os

from sheetshare.core.config import settings

logger = logging.getLogger("sheetshare")


# Collection names shared by both store implementations
UPLOADS = "uploads"
COLLABORATIONS = "collaborations"
SHAREABLE_LINKS = "shareable_links"
WEBHOOKS = "webhooks"

# Fields the store must keep unique (nulls excluded)
UNIQUE_FIELDS = {
    COLLABORATIONS: ("invitation_token", "invitee_key"),
    SHAREABLE_LINKS: ("token",),
}

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine
_engine = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def build_engine(url: str):
    """Create an engine; SQLite gets a single shared connection."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,  # Set to True for SQL query logging
    )


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    _engine = build_engine(url)

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def create_all_tables(engine=None):
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=engine or get_engine())


def drop_all_tables(engine=None):
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    metadata.drop_all(bind=engine or get_engine())


def check_connection(engine=None) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(select(1))
        return True
    except SQLAlchemyError:
        logger.warning("database.unreachable", exc_info=True)
        return False


# Uploads (owned by the upload subsystem; read here for projections)
uploads = Table(
    UPLOADS,
    metadata,
    Column('id', String(36), primary_key=True),
    Column('file_name', Text, nullable=False),
    Column('original_name', Text, nullable=True),
    Column('sheet_name', Text, nullable=True),
    Column('headers', JSON, nullable=True),
    Column('data', JSON, nullable=True),
    Column('total_rows', Integer, nullable=False, default=0),
    Column('total_columns', Integer, nullable=False, default=0),
    Column('upload_date', DateTime(timezone=True), nullable=True),
)

# Collaboration invitations
collaborations = Table(
    COLLABORATIONS,
    metadata,
    Column('id', String(36), primary_key=True),
    Column('upload_id', String(36), nullable=False, index=True),
    Column('email', String(320), nullable=False),
    Column('name', Text, nullable=True),
    Column('role', String(20), nullable=False),
    Column('status', String(20), nullable=False, index=True),
    # Unique while present; cleared on acceptance/revocation
    Column('invitation_token', String(128), nullable=True, unique=True),
    # "<upload_id>:<email>" while the invitation is not revoked
    Column('invitee_key', String(360), nullable=True, unique=True),
    Column('invited_by', String(320), nullable=True),
    Column('invited_at', DateTime(timezone=True), nullable=False),
    Column('accepted_at', DateTime(timezone=True), nullable=True),
    Column('last_active', DateTime(timezone=True), nullable=True),
    Column('revoked_at', DateTime(timezone=True), nullable=True),
    Column('updated_at', DateTime(timezone=True), nullable=True),
    Column('file_name', Text, nullable=True),
    Column('avatar', Text, nullable=True),
    # Composite index for list_collaborators pattern: (upload_id, invited_at)
    Index('idx_collaborations_upload_invited', 'upload_id', 'invited_at'),
    Index('idx_collaborations_upload_email', 'upload_id', 'email'),
)

# Shareable links
shareable_links = Table(
    SHAREABLE_LINKS,
    metadata,
    Column('id', String(36), primary_key=True),
    Column('upload_id', String(36), nullable=False, index=True),
    Column('token', String(128), nullable=False, unique=True),
    Column('role', String(20), nullable=False),
    Column('expires_at', DateTime(timezone=True), nullable=True),
    Column('is_active', Boolean, nullable=False, default=True),
    Column('access_count', Integer, nullable=False, default=0),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('last_accessed', DateTime(timezone=True), nullable=True),
    Column('updated_at', DateTime(timezone=True), nullable=True),
    Column('created_by', String(320), nullable=True),
    Column('file_name', Text, nullable=True),
    Index('idx_shareable_links_upload_created', 'upload_id', 'created_at'),
)

# Outbound webhook registrations
webhooks = Table(
    WEBHOOKS,
    metadata,
    Column('id', String(36), primary_key=True),
    Column('name', Text, nullable=False),
    Column('url', Text, nullable=False),
    Column('events', JSON, nullable=False),
    Column('secret', String(128), nullable=False),
    Column('is_active', Boolean, nullable=False, default=True),
    Column('success_count', Integer, nullable=False, default=0),
    Column('failure_count', Integer, nullable=False, default=0),
    Column('last_triggered', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=True),
    Index('idx_webhooks_active', 'is_active'),
)
