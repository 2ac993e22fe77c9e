"""Carry out the actions of a transition against the forge and the clone.

Every action is idempotent: before creating an artifact the dispatcher looks
for one carrying the action's key marker and adopts it. The progress record is
saved last, with compare-and-swap on the revision the transition was computed
from, so an interrupted dispatch is resumed by the next poll without
duplicates.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.domain.errors import (
    ActionConflict,
    ActionFatal,
    ArtifactExists,
    ArtifactNotFound,
    ProgressUnavailable,
    StaleRevision,
)
from repoquest.domain.model import ActionKind, ChapterPhase, MergeType, ResetKind

from .identity import (
    RESET_LABEL,
    SOLUTION_LABEL,
    STARTER_LABEL,
    branch_name,
    with_marker,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from repoquest.domain.model import (
        Action,
        ActionKey,
        Chapter,
        IssueSnapshot,
        ProgressRecord,
        PullSnapshot,
        QuestInstance,
        Transition,
    )
    from repoquest.domain.ports import ForgeClient, GitFactory, ProgressUnitOfWork

log = getLogger(__name__)

_MERGE_NOTICE = {
    MergeType.SUCCESS: "",
    MergeType.STARTER_RESET: (
        "The new starter code did not apply cleanly on top of your work, so this "
        "branch restores the starter code as shipped."
    ),
    MergeType.SOLUTION_RESET: (
        "The new starter code did not apply cleanly on top of your work, so this "
        "branch overrides it with the reference solution."
    ),
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class DispatchResult:
    """Summary of one applied transition."""

    record: ProgressRecord
    created: tuple[Action, ...] = ()
    adopted: tuple[Action, ...] = ()
    persisted: bool = False


@dataclass(slots=True)
class ActionDispatcher:
    """Apply transitions for one quest instance."""

    instance: QuestInstance
    forge: ForgeClient
    git_factory: GitFactory
    unit_of_work_factory: Callable[[], ProgressUnitOfWork]
    clock: Callable[[], datetime] = field(default=_utcnow)
    _created: list[Action] = field(default_factory=list, init=False, repr=False)
    _adopted: list[Action] = field(default_factory=list, init=False, repr=False)

    def apply(self, transition: Transition) -> DispatchResult:
        """Apply ``transition`` and persist its record.

        Raises ``StaleRevision`` before any remote write when the stored record
        moved on, ``ActionConflict`` when the forge rejects a create, and
        ``ActionFatal`` for transitions no valid state machine produces.
        ``ProgressUnavailable`` from the store is re-raised after the remote
        writes; their key markers let the next poll resume.
        """

        if transition.is_noop:
            return DispatchResult(record=transition.previous)

        self._check_revision(transition.expected_revision)
        self._validate(transition)

        self._created.clear()
        self._adopted.clear()
        record = transition.record
        for action in transition.actions:
            record = self.apply_action(action, record)

        stamped = replace(record, updated_at=self.clock())
        try:
            with self.unit_of_work_factory() as uow:
                saved = uow.repositories.progress.save(
                    stamped,
                    expected_revision=transition.expected_revision,
                )
                uow.commit()
        except ProgressUnavailable:
            if self._created:
                log.warning(
                    "Progress of %s not saved after %s; the next poll adopts them by key",
                    self.instance.id,
                    [action.describe() for action in self._created],
                )
            raise

        log.info(
            "Applied %s for %s: %s -> %s (revision %s)",
            [action.describe() for action in transition.actions] or "no actions",
            self.instance.id,
            transition.previous.phase,
            saved.phase,
            saved.revision,
        )
        return DispatchResult(
            record=saved,
            created=tuple(self._created),
            adopted=tuple(self._adopted),
            persisted=True,
        )

    def apply_action(self, action: Action, record: ProgressRecord) -> ProgressRecord:
        """Perform one action and return ``record`` with any artifact numbers filled in."""

        match action.kind:
            case ActionKind.FILE_ISSUE:
                issue = self._file_issue(action)
                return replace(record, issue_number=issue.number)
            case ActionKind.OPEN_STARTER_PR:
                pull = self._open_starter_pull(action)
                return replace(record, starter_pull_number=pull.number)
            case ActionKind.FILE_RESET_PR:
                pull = self._file_reset_pull(action, record)
                return replace(record, reset_pull_number=pull.number)
            case ActionKind.MERGE_PR:
                self._merge_pull(action)
                return record
            case ActionKind.CLOSE_ISSUE:
                self._close_issue(action, record)
                return record
            case ActionKind.ADVANCE_CHAPTER:
                return record
            case _:
                raise ActionFatal(f"Unsupported action {action.kind!r}")

    # -- guards -------------------------------------------------------------------

    def _check_revision(self, expected: int) -> None:
        with self.unit_of_work_factory() as uow:
            stored = uow.repositories.progress.load(self.instance.id)
        actual = stored.revision if stored is not None else 0
        if actual != expected:
            raise StaleRevision(
                f"Progress of {self.instance.id} is at revision {actual}, "
                f"transition expected {expected}",
                expected=expected,
                actual=actual,
            )

    def _validate(self, transition: Transition) -> None:
        quest = self.instance.quest
        previous = transition.previous
        target = transition.record
        if target.chapter_index < previous.chapter_index:
            raise ActionFatal(
                f"Transition moves {self.instance.id} back from chapter "
                f"{previous.chapter_index + 1} to {target.chapter_index + 1}"
            )
        try:
            quest.chapter(target.chapter_index)
        except IndexError as exc:
            raise ActionFatal(
                f"Quest {quest.title!r} has no chapter {target.chapter_index + 1}"
            ) from exc

        for action in transition.actions:
            if action.chapter_index != previous.chapter_index:
                raise ActionFatal(
                    f"Action {action.describe()} does not belong to chapter "
                    f"{previous.chapter_index + 1}"
                )
            if action.kind is ActionKind.ADVANCE_CHAPTER:
                if previous.phase is ChapterPhase.FINISHED:
                    raise ActionFatal(f"Quest of {self.instance.id} is already finished")
                finished = target.phase is ChapterPhase.FINISHED
                if finished != quest.is_last(previous.chapter_index):
                    raise ActionFatal(
                        f"Cannot advance {self.instance.id} past chapter "
                        f"{previous.chapter_index + 1} of {len(quest)}"
                    )

    # -- issues -------------------------------------------------------------------

    def _file_issue(self, action: Action) -> IssueSnapshot:
        chapter = self._chapter(action)
        repository = self.instance.repository
        existing = _find_by_key(self.forge.list_issues(repository), action.key)
        if existing is not None:
            self._adopted.append(action)
            log.debug("Adopting issue #%s for %s", existing.number, action.key)
            self._ensure_labels(existing.number, (chapter.label,))
            return existing

        try:
            issue = self.forge.create_issue(
                repository,
                title=chapter.issue.title,
                body=with_marker(chapter.issue.body, action.key),
                labels=(chapter.label,),
            )
        except ArtifactExists as exc:
            raise ActionConflict(f"Issue for {action.key} already exists") from exc
        self._created.append(action)
        log.info("Filed issue #%s for chapter %s", issue.number, chapter.index + 1)
        return issue

    def _close_issue(self, action: Action, record: ProgressRecord) -> None:
        number = action.issue_number or record.issue_number
        if number is None:
            raise ActionFatal(f"No issue known for chapter {action.chapter_index + 1}")
        repository = self.instance.repository
        try:
            issue = self.forge.get_issue(repository, number)
        except ArtifactNotFound as exc:
            raise ActionConflict(f"Issue #{number} disappeared before closing") from exc
        if issue.is_closed:
            self._adopted.append(action)
            return
        self.forge.close_issue(repository, number)
        self._created.append(action)
        log.info("Closed issue #%s", number)

    # -- pull requests ------------------------------------------------------------

    def _open_starter_pull(self, action: Action) -> PullSnapshot:
        chapter = self._chapter(action)
        starter_ref = chapter.starter_ref
        if starter_ref is None:
            raise ActionFatal(f"Chapter {chapter.index + 1} ships no starter code")

        previous = self._previous_source(chapter)

        def prepare(branch: str) -> MergeType:
            git = self.git_factory(self.instance)
            prepared = git.prepare_branch(
                branch,
                base=self.instance.upstream_ref,
                source_ref=self.instance.template_ref(starter_ref),
                since_ref=self.instance.template_ref(previous) if previous else None,
            )
            return prepared.merge_type

        return self._open_pull(
            action,
            chapter,
            title=f"Starter code for {chapter.title}",
            body=f"Merge this pull request to receive the starter code for {chapter.title}.",
            labels=(STARTER_LABEL, chapter.label),
            prepare=prepare,
        )

    def _file_reset_pull(self, action: Action, record: ProgressRecord) -> PullSnapshot:
        chapter = self._chapter(action)
        kind = action.reset_kind or ResetKind.STARTER
        if kind is ResetKind.SOLUTION:
            source = chapter.solution_ref
            merge_type = MergeType.SOLUTION_RESET
            title = f"Reference solution for {chapter.title}"
            body = (
                "Merge this pull request to replace your work with the reference "
                f"solution for {chapter.title}."
            )
            labels: tuple[str, ...] = (RESET_LABEL, SOLUTION_LABEL, chapter.label)
        else:
            source = self._baseline_starter(record)
            merge_type = MergeType.STARTER_RESET
            title = f"Restore starter code for {chapter.title}"
            body = (
                "Code outside the game areas was changed. Merge this pull request "
                "to restore the starter code."
            )
            labels = (RESET_LABEL, chapter.label)
        if source is None:
            raise ActionFatal(f"Chapter {chapter.index + 1} has nothing to reset to ({kind})")

        def prepare(branch: str) -> MergeType:
            git = self.git_factory(self.instance)
            prepared = git.prepare_override_branch(
                branch,
                base=self.instance.upstream_ref,
                source_ref=self.instance.template_ref(source),
                merge_type=merge_type,
            )
            return prepared.merge_type

        return self._open_pull(
            action, chapter, title=title, body=body, labels=labels, prepare=prepare
        )

    def _open_pull(
        self,
        action: Action,
        chapter: Chapter,
        *,
        title: str,
        body: str,
        labels: Sequence[str],
        prepare: Callable[[str], MergeType],
    ) -> PullSnapshot:
        repository = self.instance.repository
        existing = _find_by_key(self.forge.list_pulls(repository), action.key)
        if existing is not None:
            self._adopted.append(action)
            log.debug("Adopting pull request #%s for %s", existing.number, action.key)
            self._ensure_labels(existing.number, labels)
            return existing

        branch = branch_name(chapter, action.key)
        if self.forge.get_branch_head(repository, branch) is None:
            merge_type = prepare(branch)
            notice = _MERGE_NOTICE[merge_type]
            if notice:
                log.warning("Prepared %s with fallback %s", branch, merge_type)
                body = f"{body}\n\n{notice}"
        else:
            log.debug("Branch %s already pushed; reusing it", branch)

        try:
            pull = self.forge.create_pull(
                repository,
                title=title,
                body=with_marker(body, action.key),
                head=branch,
                base=self.instance.default_branch,
                labels=labels,
            )
        except ArtifactExists as exc:
            raise ActionConflict(f"Pull request for {action.key} already exists") from exc
        self._created.append(action)
        log.info("Opened pull request #%s from %s", pull.number, branch)
        return pull

    def _merge_pull(self, action: Action) -> None:
        if action.pull_number is None:
            raise ActionFatal(f"Merge action for chapter {action.chapter_index + 1} names no pull")
        repository = self.instance.repository
        try:
            pull = self.forge.get_pull(repository, action.pull_number)
        except ArtifactNotFound as exc:
            raise ActionConflict(f"Pull request #{action.pull_number} disappeared") from exc
        if pull.is_merged:
            self._adopted.append(action)
            return
        if pull.is_closed_unmerged:
            raise ActionConflict(f"Pull request #{pull.number} was closed before merging")
        self.forge.merge_pull(repository, pull.number)
        self._created.append(action)
        log.info("Merged pull request #%s", pull.number)

    # -- helpers ------------------------------------------------------------------

    def _chapter(self, action: Action) -> Chapter:
        try:
            return self.instance.quest.chapter(action.chapter_index)
        except IndexError as exc:
            raise ActionFatal(str(exc)) from exc

    def _previous_source(self, chapter: Chapter) -> str | None:
        """Return the ref the chapter's starter commits are picked from."""

        for earlier in reversed(self.instance.quest.chapters[: chapter.index]):
            if earlier.solution_ref is not None:
                return earlier.solution_ref
            if earlier.starter_ref is not None:
                return earlier.starter_ref
        return None

    def _baseline_starter(self, record: ProgressRecord) -> str | None:
        if record.baseline_index is None:
            return None
        return self.instance.quest.chapter(record.baseline_index).starter_ref

    def _ensure_labels(self, number: int, wanted: Iterable[str]) -> None:
        repository = self.instance.repository
        present = self.forge.list_labels(repository, number)
        missing = [label for label in wanted if label not in present]
        if missing:
            self.forge.set_labels(repository, number, sorted(present | set(missing)))


def _find_by_key[T: (IssueSnapshot, PullSnapshot)](items: Iterable[T], key: ActionKey) -> T | None:
    rendered = key.render()
    matches = [item for item in items if item.key == rendered]
    if not matches:
        return None
    return min(matches, key=lambda item: item.number)

