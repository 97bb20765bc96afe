"""Database engine and session management."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from pgpartition.config import PartitionSettings, get_settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()

Bind = Union[Session, Connection, Engine]


def create_engine_from_settings(settings: Optional[PartitionSettings] = None) -> Engine:
    """Create a synchronous engine from settings."""
    settings = settings or get_settings()
    engine_config = settings.get_engine_config()
    url = engine_config.pop("url")
    return create_engine(url, **engine_config)


def build_session_factory(engine: Engine) -> sessionmaker:
    """Build a session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session(factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional session scope.

    Yields:
        Session: Database session, committed on success and rolled back on error
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


@contextmanager
def as_connection(bind: Bind) -> Iterator[Connection]:
    """
    Yield a ``Connection`` for any supported bind.

    Sessions hand out the connection of their current transaction; engines
    are checked out for the duration of the block.
    """
    if isinstance(bind, Session):
        yield bind.connection()
    elif isinstance(bind, Connection):
        yield bind
    elif isinstance(bind, Engine):
        with bind.connect() as connection:
            yield connection
            if connection.in_transaction():
                connection.commit()
    else:
        raise TypeError(f"Unsupported bind type: {type(bind).__name__}")


@contextmanager
def atomic(connection: Connection) -> Iterator[None]:
    """Run a block in a SAVEPOINT if a transaction is open, else in its own transaction."""
    if connection.in_transaction():
        with connection.begin_nested():
            yield
    else:
        with connection.begin():
            yield
