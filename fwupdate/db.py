"""Run history storage.

Every update or verify run can be recorded as an UpdateRun row with one
TargetRecord per processed target (see fwupdate.session.models). The
database is a small SQLite file on the device by default; it is only
opened when history is enabled or the history command is used.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from fwupdate.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for the run history tables."""


def get_engine(db_url: str | None = None) -> Engine:
    """Create the engine for the history database.

    For a SQLite file URL the parent directory is created, since the
    default location under /var/lib may not exist on a fresh device.

    Args:
        db_url: Database URL (defaults to Settings.db_url).

    Returns:
        SQLAlchemy Engine instance.
    """
    if db_url is None:
        db_url = get_settings().db_url

    connect_args: dict[str, Any] = {}
    if db_url.startswith("sqlite:///"):
        db_path = db_url.removeprefix("sqlite:///")
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(db_url, connect_args=connect_args, echo=False)


def get_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Return a session factory for recording and querying runs.

    Objects stay usable after commit so a finished run can still be
    printed by the CLI.
    """
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Session that commits the recorded run, or rolls it back on error."""
    if session_factory is None:
        session_factory = get_session_factory()

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Engine | None = None) -> None:
    """Create the update_runs and target_records tables if missing."""
    from fwupdate.session import models as session_models  # noqa: F401

    if engine is None:
        engine = get_engine()
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
]
