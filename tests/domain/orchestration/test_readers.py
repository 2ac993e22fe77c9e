from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from repoquest.domain.errors import (
    ActionFatal,
    LocalUnavailable,
    RemoteInconsistent,
    RemoteUnavailable,
)
from repoquest.domain.model import ActionKind, ChapterPhase
from repoquest.domain.orchestration import LocalStateReader, RemoteStateReader
from repoquest.domain.orchestration.identity import action_key, render_marker
from tests.helpers.quests import make_record

if TYPE_CHECKING:
    from repoquest.domain.model import QuestInstance
    from tests.helpers.fakes import FakeForge, FakeGit


def test_remote_reader_finds_artifacts_by_marker(
    forge: FakeForge, instance: QuestInstance
) -> None:
    record = make_record(phase=ChapterPhase.ISSUE_FILED, revision=1)
    marker = render_marker(action_key(record, ActionKind.FILE_ISSUE))
    forge.add_issue(body="unrelated")
    number = forge.add_issue(body=f"Chapter 1\n\n{marker}")

    observation = RemoteStateReader(forge).observe(instance, record)

    assert observation.issue is not None
    assert observation.issue.number == number
    assert observation.starter_pull is None
    assert observation.reset_pull is None
    assert observation.default_head == "c0ffee"
    assert observation.learner_head == "c0ffee"


def test_remote_reader_uses_the_oldest_duplicate(
    forge: FakeForge, instance: QuestInstance, caplog: pytest.LogCaptureFixture
) -> None:
    record = make_record(phase=ChapterPhase.ISSUE_FILED, revision=1)
    marker = render_marker(action_key(record, ActionKind.FILE_ISSUE))
    first = forge.add_issue(body=marker)
    forge.add_issue(body=marker)

    with caplog.at_level(logging.WARNING):
        observation = RemoteStateReader(forge).observe(instance, record)

    assert observation.issue is not None
    assert observation.issue.number == first
    assert "using the oldest" in caplog.text


def test_remote_reader_fetches_recorded_numbers_directly(
    forge: FakeForge, instance: QuestInstance
) -> None:
    number = forge.add_issue(body="no marker needed")
    record = make_record(phase=ChapterPhase.IN_PROGRESS, revision=2, issue_number=number)

    observation = RemoteStateReader(forge).observe(instance, record)

    assert observation.issue is not None
    assert observation.issue.number == number
    assert "get_issue" in forge.calls
    assert "list_issues" not in forge.calls


def test_remote_reader_flags_missing_recorded_artifacts(
    forge: FakeForge, instance: QuestInstance
) -> None:
    record = make_record(phase=ChapterPhase.IN_PROGRESS, revision=2, issue_number=41)

    with pytest.raises(RemoteInconsistent, match="#41"):
        RemoteStateReader(forge).observe(instance, record)


def test_remote_reader_reports_rejected_reads_as_inconsistent(
    forge: FakeForge, instance: QuestInstance
) -> None:
    number = forge.add_issue()
    forge.fail("get_issue", ActionFatal("GitHub GET issues returned 451"))
    record = make_record(phase=ChapterPhase.IN_PROGRESS, revision=2, issue_number=number)

    with pytest.raises(RemoteInconsistent, match="451"):
        RemoteStateReader(forge).observe(instance, record)


def test_remote_reader_only_reads_reset_pulls_while_resetting(
    forge: FakeForge, instance: QuestInstance
) -> None:
    record = make_record(phase=ChapterPhase.RESETTING, revision=4, reset_attempt=1)
    marker = render_marker(action_key(record, ActionKind.FILE_RESET_PR))
    number = forge.add_pull(head="repoquest/chapter-1/reset-1", body=marker)

    resetting = RemoteStateReader(forge).observe(instance, record)

    assert resetting.reset_pull is not None
    assert resetting.reset_pull.number == number


def test_remote_reader_propagates_unavailability(
    forge: FakeForge, instance: QuestInstance
) -> None:
    forge.fail("list_issues", RemoteUnavailable("offline"))

    with pytest.raises(RemoteUnavailable):
        RemoteStateReader(forge).observe(instance, make_record())


def test_local_reader_reports_working_copy(git: FakeGit, instance: QuestInstance) -> None:
    git.dirty = True
    git.ahead = 1
    git.behind = 2

    observation = LocalStateReader(git.for_instance).observe(instance)

    assert observation.head_commit == "c0ffee"
    assert observation.dirty
    assert observation.is_behind
    assert git.fetched == ["origin"]


def test_local_reader_tolerates_failed_fetch(
    git: FakeGit, instance: QuestInstance, caplog: pytest.LogCaptureFixture
) -> None:
    git.fetch_error = LocalUnavailable("no network")

    with caplog.at_level(logging.WARNING):
        observation = LocalStateReader(git.for_instance).observe(instance)

    assert observation.head_commit == "c0ffee"
    assert "Could not fetch origin" in caplog.text


def test_local_reader_can_skip_fetching(git: FakeGit, instance: QuestInstance) -> None:
    LocalStateReader(git.for_instance, fetch_remote=False).observe(instance)

    assert git.fetched == []
