"""
database.py — SQLAlchemy 2.0 engine and session factory.

This module owns all database connection infrastructure. Nothing else in the
package creates engines or sessions directly.

Usage:
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    store = ProfileStore(make_session_factory(engine))
"""
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model in models.py."""
    pass


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,   # snapshots are built after commit
    )


def init_db(engine: Engine) -> None:
    """Create all tables. Imports models so they register on Base.metadata."""
    from . import models  # noqa: F401

    Base.metadata.create_all(engine)
