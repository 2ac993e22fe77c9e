from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

import repoquest.ui.cli as cli_module
from repoquest.config import MissingConfigurationError
from repoquest.domain.errors import LocalUnavailable, RemoteInconsistent
from repoquest.domain.model import ChapterPhase
from tests.helpers.quests import INSTANCE_ID, make_record
from tests.helpers.sessions import open_fake_session

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from repoquest.app import QuestSession
    from tests.helpers.fakes import (
        FakeForge,
        FakeGit,
        InMemoryProgressRepository,
        InMemoryUnitOfWork,
    )


@pytest.fixture
def session(
    tmp_path: Path,
    forge: FakeForge,
    git: FakeGit,
    uow_factory: Callable[[], InMemoryUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> QuestSession:
    opened = open_fake_session(tmp_path, forge=forge, git=git, uow_factory=uow_factory)
    monkeypatch.setattr(cli_module, "open_session", lambda *_args, **_kwargs: opened)
    monkeypatch.setattr(cli_module, "configure_logging", lambda **_kwargs: None)
    return opened


def test_status_prints_current_chapter(
    session: QuestSession, capsys: pytest.CaptureFixture[str]
) -> None:
    del session
    cli_module.main(["status"])

    out = capsys.readouterr().out
    assert out.startswith("Parser Quest: chapter 1/2 'Tokens' (not_started)")


def test_poll_runs_one_cycle(
    session: QuestSession,
    forge: FakeForge,
    capsys: pytest.CaptureFixture[str],
) -> None:
    del session
    cli_module.main(["poll"])

    assert forge.created("issue") == ["create_issue"]
    assert "(issue_filed)" in capsys.readouterr().out


def test_finished_quest_status(
    session: QuestSession,
    progress_repository: InMemoryProgressRepository,
    capsys: pytest.CaptureFixture[str],
) -> None:
    del session
    progress_repository.store[INSTANCE_ID] = make_record(
        chapter_index=1, phase=ChapterPhase.FINISHED, revision=9
    )

    cli_module.main(["status"])

    assert capsys.readouterr().out.strip() == "Parser Quest: finished"


def test_halted_poll_exits_with_failure(
    session: QuestSession,
    forge: FakeForge,
    capsys: pytest.CaptureFixture[str],
) -> None:
    del session
    forge.fail("list_issues", RemoteInconsistent("two issues carry chapter-1"))

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["poll"])

    assert excinfo.value.code == cli_module.EXIT_FAILURE
    out = capsys.readouterr().out
    assert "polling halted" in out
    assert "last error: two issues carry chapter-1" in out


def test_ack_clears_a_halt(
    session: QuestSession,
    forge: FakeForge,
    capsys: pytest.CaptureFixture[str],
) -> None:
    forge.fail("list_issues", RemoteInconsistent("two issues carry chapter-1"))
    session.orchestrator.trigger_poll(INSTANCE_ID)
    assert session.orchestrator.current_state(INSTANCE_ID).halted

    cli_module.main(["ack"])

    assert "polling halted" not in capsys.readouterr().out
    assert not session.orchestrator.current_state(INSTANCE_ID).halted


def test_configuration_errors_exit_with_usage(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fail(*_args: object, **_kwargs: object) -> QuestSession:
        raise MissingConfigurationError("Missing configuration for: GITHUB_TOKEN")

    monkeypatch.setattr(cli_module, "open_session", fail)
    monkeypatch.setattr(cli_module, "configure_logging", lambda **_kwargs: None)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["status"])

    assert excinfo.value.code == cli_module.EXIT_USAGE


def test_unreadable_clone_exits_with_usage(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(*_args: object, **_kwargs: object) -> QuestSession:
        raise LocalUnavailable("git remote get-url origin failed: not a git repository")

    monkeypatch.setattr(cli_module, "open_session", fail)
    monkeypatch.setattr(cli_module, "configure_logging", lambda **_kwargs: None)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["status"])

    assert excinfo.value.code == cli_module.EXIT_USAGE


def test_unexpected_errors_exit_with_failure(
    session: QuestSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    def explode(_instance_id: str) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(session.orchestrator, "current_state", explode)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["status"])

    assert excinfo.value.code == cli_module.EXIT_FAILURE


@pytest.mark.parametrize("argv", [["watch", "--interval", "0"], ["bogus"], []])
def test_invalid_arguments_exit_with_usage(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(argv)

    assert excinfo.value.code == cli_module.EXIT_USAGE


def test_parse_args_defaults() -> None:
    args = cli_module._parse_args(["watch", "--quest-file", "rqst.toml", "-v"])  # noqa: SLF001

    assert args.command == "watch"
    assert args.interval is None
    assert str(args.quest_file) == "rqst.toml"
    assert args.verbose
