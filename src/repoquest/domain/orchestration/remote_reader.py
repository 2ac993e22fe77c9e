"""Read the forge state relevant to an instance's current chapter."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.domain.errors import (
    ActionConflict,
    ActionFatal,
    ArtifactNotFound,
    RemoteInconsistent,
)
from repoquest.domain.model import ChapterPhase, RemoteObservation

from .identity import issue_key, reset_key, starter_key

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from repoquest.domain.model import (
        ActionKey,
        IssueSnapshot,
        ProgressRecord,
        PullSnapshot,
        QuestInstance,
    )
    from repoquest.domain.ports import ForgeClient

log = getLogger(__name__)


@dataclass(slots=True)
class RemoteStateReader:
    """Snapshot issues, pull requests, and branch heads without side effects.

    Artifacts the record already names are fetched by number, and their absence
    is an inconsistency. Artifacts the record does not name yet are looked up by
    their identity marker; when the forge has not indexed a fresh artifact yet
    they are simply reported as absent and picked up on a later poll.

    Only ``RemoteUnavailable`` and ``RemoteInconsistent`` leave ``observe``;
    any other forge rejection of a read means the remote no longer matches.
    """

    forge: ForgeClient

    def observe(self, instance: QuestInstance, record: ProgressRecord) -> RemoteObservation:
        try:
            return self._observe(instance, record)
        except (ArtifactNotFound, ActionConflict, ActionFatal) as exc:
            raise RemoteInconsistent(f"Forge rejected a read for {instance.id}: {exc}") from exc

    def _observe(self, instance: QuestInstance, record: ProgressRecord) -> RemoteObservation:
        repository = instance.repository
        listing = _Listing(self.forge, instance)

        issue = self._locate(
            number=record.issue_number,
            key=issue_key(record),
            fetch=lambda number: self.forge.get_issue(repository, number),
            candidates=listing.issues,
            what="issue",
        )
        starter_pull = self._locate(
            number=record.starter_pull_number,
            key=starter_key(record),
            fetch=lambda number: self.forge.get_pull(repository, number),
            candidates=listing.pulls,
            what="starter pull request",
        )
        reset_pull: PullSnapshot | None = None
        if record.phase is ChapterPhase.RESETTING:
            reset_pull = self._locate(
                number=record.reset_pull_number,
                key=reset_key(record),
                fetch=lambda number: self.forge.get_pull(repository, number),
                candidates=listing.pulls,
                what="reset pull request",
            )

        default_head = self.forge.get_branch_head(repository, instance.default_branch)
        learner_head = (
            default_head
            if instance.learner_branch == instance.default_branch
            else self.forge.get_branch_head(repository, instance.learner_branch)
        )

        log.debug(
            "Observed %s chapter %s: issue=%s starter=%s reset=%s head=%s",
            instance.id,
            record.chapter_index + 1,
            issue.number if issue else None,
            starter_pull.number if starter_pull else None,
            reset_pull.number if reset_pull else None,
            default_head,
        )
        return RemoteObservation(
            issue=issue,
            starter_pull=starter_pull,
            reset_pull=reset_pull,
            default_head=default_head,
            learner_head=learner_head,
        )

    def _locate[TSnapshot: (IssueSnapshot, PullSnapshot)](
        self,
        *,
        number: int | None,
        key: ActionKey,
        fetch: Callable[[int], TSnapshot],
        candidates: Callable[[], Sequence[TSnapshot]],
        what: str,
    ) -> TSnapshot | None:
        if number is not None:
            try:
                return fetch(number)
            except ArtifactNotFound as exc:
                raise RemoteInconsistent(
                    f"The {what} #{number} recorded for {key} no longer exists"
                ) from exc

        rendered = key.render()
        matches = [snapshot for snapshot in candidates() if snapshot.key == rendered]
        if not matches:
            return None
        if len(matches) > 1:
            log.warning(
                "Found %s %ss for %s; using the oldest",
                len(matches),
                what,
                rendered,
            )
        return min(matches, key=lambda snapshot: snapshot.number)


class _Listing:
    """Lazily fetched issue and pull listings shared by one observation."""

    def __init__(self, forge: ForgeClient, instance: QuestInstance) -> None:
        self._forge = forge
        self._instance = instance
        self._issues: Sequence[IssueSnapshot] | None = None
        self._pulls: Sequence[PullSnapshot] | None = None

    def issues(self) -> Sequence[IssueSnapshot]:
        if self._issues is None:
            self._issues = self._forge.list_issues(self._instance.repository)
        return self._issues

    def pulls(self) -> Sequence[PullSnapshot]:
        if self._pulls is None:
            self._pulls = self._forge.list_pulls(self._instance.repository)
        return self._pulls
