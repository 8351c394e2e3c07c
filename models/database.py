"""
Database Configuration Module
=============================

Provides the SQLAlchemy engine and session management for the access
policy engine. The URL comes from settings (ACCESS_DATABASE_URL) and
defaults to a local SQLite file.

Tests build their own in-memory engine with `make_engine` and bind a
session to it directly.
"""

from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config.settings import get_settings

# Base class for declarative models
Base = declarative_base()


def make_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL (settings default when omitted).

    SQLite connections are shared across threads by the CLI, so the
    same-thread check is disabled for them.
    """
    url = url or get_settings().database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=echo, connect_args=connect_args)


engine = make_engine(echo=get_settings().database_echo)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session():
    """
    Context manager for database sessions.

    Commits on success, rolls back on failure.

    Usage:
        with get_session() as session:
            user = session.query(User).first()
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Optional[Engine] = None):
    """
    Create all tables that don't exist yet. Safe to call repeatedly.
    """
    from . import entities  # noqa: F401 - Ensure models are loaded
    Base.metadata.create_all(bind=bind or engine)


def reset_db(bind: Optional[Engine] = None):
    """
    Drop and recreate all tables.

    WARNING: This destroys all data. Use only for development/testing.
    """
    from . import entities  # noqa: F401
    Base.metadata.drop_all(bind=bind or engine)
    Base.metadata.create_all(bind=bind or engine)
