from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from repoquest.adapters.sqlalchemy import create_all_tables
from repoquest.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyProgressUnitOfWork,
    shutdown,
    startup,
)
from tests.helpers.fakes import (
    FakeForge,
    FakeGit,
    InMemoryProgressRepository,
    InMemoryUnitOfWork,
    unit_of_work_factory,
)
from tests.helpers.quests import make_instance, make_quest

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from repoquest.domain.model import Quest, QuestInstance


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    # One shared connection so threads see the same in-memory database.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyProgressUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyProgressUnitOfWork:
        return SqlAlchemyProgressUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def quest() -> Quest:
    return make_quest()


@pytest.fixture
def instance(quest: Quest) -> QuestInstance:
    return make_instance(quest)


@pytest.fixture
def forge() -> FakeForge:
    return FakeForge()


@pytest.fixture
def git(forge: FakeForge) -> FakeGit:
    return FakeGit(forge=forge)


@pytest.fixture
def progress_repository() -> InMemoryProgressRepository:
    return InMemoryProgressRepository()


@pytest.fixture
def uow_factory(
    progress_repository: InMemoryProgressRepository,
) -> Callable[[], InMemoryUnitOfWork]:
    return unit_of_work_factory(progress_repository)
