from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from repoquest.adapters.quest_package import QuestPackageError
from repoquest.app import build_orchestrator, describe_instance, open_session
from repoquest.config import OrchestratorConfig
from repoquest.domain.errors import LocalUnavailable
from repoquest.domain.model import ChapterPhase, RepositoryRef
from repoquest.domain.orchestration import PollStatus
from tests.helpers.quests import INSTANCE_ID, make_quest
from tests.helpers.sessions import open_fake_session

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from tests.helpers.fakes import FakeForge, FakeGit, InMemoryUnitOfWork


def test_open_session_registers_the_instance(
    tmp_path: Path,
    forge: FakeForge,
    git: FakeGit,
    uow_factory: Callable[[], InMemoryUnitOfWork],
) -> None:
    session = open_fake_session(tmp_path, forge=forge, git=git, uow_factory=uow_factory)

    assert session.instance.id == INSTANCE_ID
    assert session.instance.path == tmp_path.resolve()
    assert session.instance.quest.title == "Parser Quest"
    assert [chapter.label for chapter in session.instance.quest.chapters] == [
        "chapter-1",
        "chapter-2",
    ]
    assert git.fetched == ["upstream"]
    assert session.orchestrator.instance_ids == (INSTANCE_ID,)

    outcome = session.orchestrator.trigger_poll(INSTANCE_ID)

    assert outcome.status is PollStatus.OK
    assert outcome.record is not None
    assert outcome.record.phase is ChapterPhase.ISSUE_FILED


def test_unreachable_template_remote_is_only_logged(
    tmp_path: Path,
    forge: FakeForge,
    git: FakeGit,
    uow_factory: Callable[[], InMemoryUnitOfWork],
    caplog: pytest.LogCaptureFixture,
) -> None:
    git.fetch_error = LocalUnavailable("no upstream remote")

    with caplog.at_level(logging.WARNING, logger="repoquest.app"):
        session = open_fake_session(tmp_path, forge=forge, git=git, uow_factory=uow_factory)

    assert session.instance.id == INSTANCE_ID
    assert "Could not fetch template refs" in caplog.text


def test_open_session_rejects_a_broken_quest_file(
    tmp_path: Path,
    forge: FakeForge,
    git: FakeGit,
    uow_factory: Callable[[], InMemoryUnitOfWork],
) -> None:
    (tmp_path / "rqst.toml").write_text("title = ", encoding="utf-8")

    with pytest.raises(QuestPackageError):
        open_session(
            tmp_path,
            quest_file=tmp_path / "rqst.toml",
            repository=INSTANCE_ID,
            config=OrchestratorConfig(),
            forge=forge,
            git_factory=git.for_instance,
            unit_of_work_factory=uow_factory,
        )


def test_describe_instance_uses_explicit_repository(tmp_path: Path) -> None:
    repository = RepositoryRef(owner="learner", name="parser-quest")

    instance = describe_instance(tmp_path, make_quest(), repository=repository)

    assert instance.id == "learner/parser-quest"
    assert instance.upstream_ref == "origin/main"


def test_build_orchestrator_uses_injected_adapters(
    forge: FakeForge,
    git: FakeGit,
    uow_factory: Callable[[], InMemoryUnitOfWork],
) -> None:
    orchestrator = build_orchestrator(
        config=OrchestratorConfig(auto_merge_starter=True),
        forge=forge,
        git_factory=git.for_instance,
        unit_of_work_factory=uow_factory,
    )

    assert orchestrator.instance_ids == ()
