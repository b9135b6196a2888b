"""
Database engine and session management using SQLAlchemy 2.x.
Provides the declarative base and session factories used by the SQL store.
"""
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.pool import StaticPool

from crm_platform.lib.settings import settings


# Base class for all SQLAlchemy models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def create_db_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite URLs get a thread-tolerant connection; an in-memory SQLite URL
    shares a single connection so every session sees the same tables.
    Server databases get a bounded connection pool.
    """
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to an engine; objects stay readable after commit."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Process-wide engine, created on first use from settings."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(settings.database_url, echo=settings.debug)
    return _engine


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as db:
            db.add(customer)
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Create all tables.
    Imports the models package so every table is registered on Base.metadata.
    """
    import crm_platform.models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def drop_db(engine: Optional[Engine] = None) -> None:
    """
    Drop all tables. Use with caution - for testing only.
    """
    Base.metadata.drop_all(bind=engine or get_engine())
