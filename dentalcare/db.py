from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DATABASE_ECHO, DATABASE_URL


def make_engine(url: str = DATABASE_URL, echo: bool = DATABASE_ECHO) -> Engine:
    """
    Crea l'engine. Per SQLite attiva le foreign key e, se in memoria,
    condivide un'unica connessione (altrimenti ogni sessione vedrebbe un DB vuoto).
    """
    kwargs: dict = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool

    eng = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(eng, "connect")
        def _sqlite_fk(dbapi_conn, _record) -> None:
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    return eng


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


engine = make_engine()
SessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    """Base ORM per tutti i modelli."""
    pass


def init_db(bind: Engine | None = None) -> None:
    """Crea le tabelle se non esistono."""
    from . import models  # noqa: F401  (registra le tabelle nel metadata)

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def db_session(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Context manager per gestire correttamente la sessione:
    - commit se tutto ok
    - rollback su eccezioni
    - close sempre
    """
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
