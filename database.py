import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings
from errors import PersistenceError


logger = logging.getLogger(__name__)

_lock = threading.Lock()
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _create_engine(database_url: str) -> Engine:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    eng = create_engine(database_url, connect_args=connect_args)
    if database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def get_engine() -> Engine:
    """Return the process-wide engine, building it on first use.

    A failed construction leaves nothing cached, so the next caller retries
    instead of inheriting the failure for the rest of the process.
    """
    global _engine
    if _engine is not None:
        return _engine
    with _lock:
        if _engine is None:
            url = get_settings().database_url
            try:
                eng = _create_engine(url)
                with eng.connect():
                    pass
            except SQLAlchemyError as exc:
                logger.exception(f"engine_init_failed: url={url}")
                raise PersistenceError() from exc
            _engine = eng
    return _engine


def get_sessionmaker() -> sessionmaker:
    global _session_factory
    if _session_factory is not None:
        return _session_factory
    engine = get_engine()
    with _lock:
        if _session_factory is None:
            _session_factory = sessionmaker(
                bind=engine, autoflush=False, expire_on_commit=False
            )
    return _session_factory


def reset_engine() -> None:
    global _engine, _session_factory
    with _lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = get_sessionmaker()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def persistence_guard(session: Session, action: str) -> Iterator[None]:
    """Translate store failures into :class:`PersistenceError`.

    The session is rolled back and the full driver error is logged; callers
    only ever see the generic message.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"persistence_failure: action={action}")
        raise PersistenceError() from exc
