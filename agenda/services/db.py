"""Database session management utilities."""

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from agenda.models.base import Base
from agenda.utils.config import get_settings


@lru_cache()
def get_engine() -> Engine:
    """Return the process-wide engine, created on first use."""

    settings = get_settings()
    return create_engine(settings.postgres_url, future=True, echo=False)


@lru_cache()
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create any missing tables."""

    # Imported for their side effect of registering the tables.
    from agenda.models import booking, patient, therapy  # noqa: F401

    Base.metadata.create_all(bind=engine)
