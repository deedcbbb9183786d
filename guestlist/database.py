from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_database_url


class Base(DeclarativeBase):
    pass


def make_engine(url: str | None = None, **kwargs) -> Engine:
    url = url or get_database_url()
    if url.startswith("sqlite"):
        # Request handlers run in FastAPI's threadpool.
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, future=True, echo=False, **kwargs)


ENGINE = make_engine()
SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False, future=True)


@contextmanager
def session_scope(factory: Callable[[], Session] = SessionLocal) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:  # pragma: no cover - passthrough to raise after rollback
        session.rollback()
        raise
    finally:
        session.close()
