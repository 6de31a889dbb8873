from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from splice.config import get_settings
from splice.models.base import Base


def create_sync_engine(database_url: str | None = None, echo: bool | None = None) -> Engine:
    settings = get_settings()
    url = database_url or settings.database_url
    connect_args = {}
    if url.startswith("sqlite"):
        # Worker threads share the connection pool
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


@lru_cache
def get_sync_engine() -> Engine:
    return create_sync_engine()


@lru_cache
def get_session_maker() -> sessionmaker[Session]:
    return sessionmaker(get_sync_engine(), class_=Session, expire_on_commit=False)


def init_db(engine: Engine | None = None) -> None:
    """Create the export job table if it does not exist."""
    engine = engine or get_sync_engine()
    Base.metadata.create_all(engine)


@contextmanager
def get_sync_db(session_factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Get a synchronous database session (worker side)."""
    session = (session_factory or get_session_maker())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
