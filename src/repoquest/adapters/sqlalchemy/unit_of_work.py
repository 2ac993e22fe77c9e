"""SQLAlchemy unit of work for quest progress.

The engine is process-wide: ``startup()`` binds it once (creating the schema)
and every ``SqlAlchemyProgressUnitOfWork`` opens its own session from it.
Leaving a unit of work without ``commit()`` discards its changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from repoquest.adapters.sqlalchemy.mappings import create_all_tables
from repoquest.adapters.sqlalchemy.repositories import (
    SqlAlchemyProgressRepository,
    store_errors,
)
from repoquest.config.storage import get_database_config
from repoquest.domain.ports.unit_of_work import ProgressRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


class StartupError(RuntimeError):
    """Raised when the progress store is used before ``startup()`` or reconfigured twice."""


@dataclass(slots=True)
class _EngineState:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None

    def require_sessions(self) -> sessionmaker[Session]:
        if self.sessions is None:
            raise StartupError(
                "Progress store not started; call "
                "repoquest.adapters.sqlalchemy.unit_of_work.startup() first"
            )
        return self.sessions


_STATE = _EngineState()


def _set_sqlite_busy_timeout(engine: Engine) -> None:
    # Several `repoquest watch` processes may share one database file.
    if engine.dialect.name != "sqlite":
        return

    def on_connect(dbapi_connection: object, _connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()

    event.listen(engine, "connect", on_connect)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the progress store to ``engine`` (or a new one) and create the schema."""

    if _STATE.engine is not None and not force:
        raise StartupError("Progress store already started; pass force=True to rebind it")
    if _STATE.engine is not None:
        log.debug("Rebinding the progress store")

    bound = engine or create_engine(database_uri or get_database_config().uri, future=True)
    _set_sqlite_busy_timeout(bound)
    create_all_tables(bound)
    _STATE.engine = bound
    _STATE.sessions = sessionmaker(bind=bound, expire_on_commit=False)


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine. Safe to call when nothing was started."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None
    _STATE.sessions = None


class SqlAlchemyProgressUnitOfWork:
    """``ProgressUnitOfWork`` over one SQLAlchemy session."""

    def __init__(self) -> None:
        self._sessions = _STATE.require_sessions()
        self._session: Session | None = None
        self._repositories: ProgressRepositories | None = None

    def __enter__(self) -> SqlAlchemyProgressUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        self._session = self._sessions()
        self._repositories = ProgressRepositories(
            progress=SqlAlchemyProgressRepository(self._session)
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open")
        return self._session

    @property
    def repositories(self) -> ProgressRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not open")
        return self._repositories

    def commit(self) -> None:
        with store_errors("commit progress"):
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


if TYPE_CHECKING:
    from repoquest.domain.ports.unit_of_work import ProgressUnitOfWork

    _uow_check: ProgressUnitOfWork = SqlAlchemyProgressUnitOfWork()
