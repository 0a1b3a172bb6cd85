"""
Database Configuration and Session Management
============================================

This module provides the database engine, session factory, and table creation
functionality for the Bank Payments Portal.
"""

import logging
from typing import Optional
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.exc import OperationalError, ProgrammingError
from config import Config
from models import Base

logger = logging.getLogger(__name__)

# Driver messages that indicate a retryable condition rather than a bad statement
TRANSIENT_ERROR_MARKERS = (
    "database is locked",
    "database table is locked",
    "could not serialize access",
    "deadlock detected",
    "server closed the connection",
    "connection reset",
    "ssl connection has been closed",
    "terminating connection",
)

def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine for the given URL with pool settings suited to its backend"""
    url = database_url or Config.DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL environment variable is required")
    echo = Config.DATABASE_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        engine = create_engine(
            url,
            echo=echo,
            # One shared connection keeps an in-memory database alive
            poolclass=StaticPool if in_memory else None,
            connect_args={"check_same_thread": False, "timeout": 15},
        )

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=7,           # Base pool
        max_overflow=15,       # Burst capacity
        pool_pre_ping=True,    # Validate connections before use
        pool_recycle=3600,     # Recycle connections every hour
        pool_timeout=30,       # Wait max 30 seconds for connection during bursts
        echo=echo,
    )

def build_session_factory(bind: Engine) -> sessionmaker:
    """Session factory bound to an engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=bind,
    )

# Default engine and session factory, built from Config.DATABASE_URL
engine = build_engine()
SessionLocal = build_session_factory(engine)

def create_tables(bind: Optional[Engine] = None) -> bool:
    """Create all database tables if they don't exist"""
    target = bind or engine
    try:
        logger.info("🏗️ Creating database tables (if they don't exist)...")
        logger.info(f"📊 Found {len(Base.metadata.tables)} table models to create")
        Base.metadata.create_all(bind=target, checkfirst=True)
        logger.info(f"✅ Database schema verified: {', '.join(sorted(Base.metadata.tables))}")
        return True
    except ProgrammingError as e:
        if "already exists" in str(e):
            logger.info(f"⚠️ Some database objects already exist (this is normal): {e}")
            return True
        logger.error(f"❌ Failed to create database tables: {e}", exc_info=True)
        return False

def is_transient_error(error: Exception) -> bool:
    """True when an OperationalError is worth retrying"""
    if not isinstance(error, OperationalError):
        return False
    message = str(error).lower()
    if getattr(error, "connection_invalidated", False):
        return True
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)

def test_connection(bind: Optional[Engine] = None) -> bool:
    """Test database connection"""
    try:
        with (bind or engine).connect() as connection:
            connection.execute(text("SELECT 1"))
            logger.debug("✅ Database connection test successful")
            return True
    except Exception as e:
        logger.error(f"❌ Database connection test failed: {e}")
        return False
