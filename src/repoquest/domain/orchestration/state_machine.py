"""Quest progression state machine.

``QuestStateMachine.decide`` maps the persisted progress record plus one poll's
observations onto the next record and the actions needed to reach it. It is a
pure function of its inputs: no I/O, no clock, no exceptions for records that
satisfy the progress invariants.

Phase flow per chapter::

    not_started -> issue_filed -> [starter_available ->] in_progress -> completed
                                                                          |
                          next chapter's not_started  <-  advance  <------+
                          (finished after the last chapter)

    any non-terminal phase -> resetting -> re-derived phase

Policies:

- Drift preempts everything, including an issue that was closed in the same
  poll. Corruption prevention outranks advancement.
- Steps that emit no action are chained within one decision; the first step
  that emits actions ends it, so a poll performs at most one group of writes.
- ``completed`` is never saved; the advance happens in the same transition.
- The chapter index only ever grows. Remote history can be rewritten by the
  learner, so regression is never inferred from it.
- A reset episode files exactly one pull request, keyed by the record's
  ``reset_attempt``. While that pull request is open, or merged but not yet
  pulled, the machine waits instead of filing another.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.domain.model import (
    Action,
    ActionKind,
    ChapterPhase,
    ConflictVerdict,
    ResetKind,
    Transition,
)

from .identity import action_key

if TYPE_CHECKING:
    from repoquest.domain.model import (
        Chapter,
        LocalObservation,
        ProgressRecord,
        Quest,
        RemoteObservation,
    )

log = getLogger(__name__)

_MAX_CHAINED_STEPS = 16


@dataclass(frozen=True, slots=True)
class _Step:
    record: ProgressRecord
    actions: tuple[Action, ...] = ()
    notes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class _Inputs:
    quest: Quest
    remote: RemoteObservation
    local: LocalObservation
    verdict: ConflictVerdict
    solution_requested: bool


@dataclass(slots=True)
class QuestStateMachine:
    """Reconciliation engine from observed state to the next progress record."""

    auto_merge_starter: bool = False
    max_steps: int = field(default=_MAX_CHAINED_STEPS)

    def decide(
        self,
        quest: Quest,
        record: ProgressRecord,
        remote: RemoteObservation,
        local: LocalObservation,
        verdict: ConflictVerdict,
        *,
        solution_requested: bool = False,
    ) -> Transition:
        """Compute the transition for one poll cycle."""

        inputs = _Inputs(
            quest=quest,
            remote=remote,
            local=local,
            verdict=verdict,
            solution_requested=solution_requested,
        )
        current = record
        notes: list[str] = []
        actions: tuple[Action, ...] = ()
        for _ in range(self.max_steps):
            step = self._step(current, inputs)
            # The request is consumed by the first step that sees it.
            inputs = replace(inputs, solution_requested=False)
            notes.extend(note for note in step.notes if note not in notes)
            if step.actions:
                current = step.record
                actions = step.actions
                break
            if step.record == current:
                break
            current = step.record

        transition = Transition(
            expected_revision=record.revision,
            previous=record,
            record=current,
            actions=actions,
            notes=tuple(notes),
        )
        if not transition.is_noop:
            log.debug(
                "Decided %s -> %s for %s with actions %s",
                record.phase,
                current.phase,
                record.instance_id,
                [action.kind for action in actions],
            )
        return transition

    # -- single steps -------------------------------------------------------------

    def _step(self, record: ProgressRecord, inputs: _Inputs) -> _Step:
        if record.phase is ChapterPhase.FINISHED:
            return _Step(record)

        record = self._adopt(record, inputs.remote)
        chapter = inputs.quest.chapter(record.chapter_index)

        if inputs.solution_requested:
            if chapter.solution_ref is None:
                step = self._step(record, replace(inputs, solution_requested=False))
                note = f"Chapter {chapter.index + 1} has no reference solution"
                return replace(step, notes=(note, *step.notes))
            if not (
                record.phase is ChapterPhase.RESETTING
                and record.reset_kind is ResetKind.SOLUTION
            ):
                return self._enter_reset(record, chapter, ResetKind.SOLUTION)

        if inputs.verdict is ConflictVerdict.DRIFTED:
            return self._drifted(record, chapter, inputs)

        match record.phase:
            case ChapterPhase.NOT_STARTED:
                return _Step(
                    replace(record, phase=ChapterPhase.ISSUE_FILED),
                    actions=(self._action(record, ActionKind.FILE_ISSUE),),
                    notes=(f"Filing the issue for chapter {record.chapter_index + 1}",),
                )
            case ChapterPhase.ISSUE_FILED:
                return self._issue_filed(record, chapter)
            case ChapterPhase.STARTER_AVAILABLE:
                return self._starter_available(record, inputs)
            case ChapterPhase.IN_PROGRESS | ChapterPhase.COMPLETED:
                return self._in_progress(record, inputs)
            case ChapterPhase.RESETTING:
                return self._resetting(record, chapter, inputs)
            case _:
                return _Step(record)

    def _issue_filed(self, record: ProgressRecord, chapter: Chapter) -> _Step:
        if chapter.has_starter:
            return _Step(
                replace(record, phase=ChapterPhase.STARTER_AVAILABLE),
                actions=(self._action(record, ActionKind.OPEN_STARTER_PR),),
                notes=(f"Opening the starter pull request for chapter {chapter.index + 1}",),
            )
        return _Step(replace(record, phase=ChapterPhase.IN_PROGRESS))

    def _starter_available(self, record: ProgressRecord, inputs: _Inputs) -> _Step:
        pull = inputs.remote.starter_pull
        if pull is None:
            return _Step(record, notes=("Waiting for the starter pull request to appear",))
        if pull.is_merged:
            return _Step(
                replace(
                    record,
                    phase=ChapterPhase.IN_PROGRESS,
                    baseline_index=record.chapter_index,
                )
            )
        if pull.is_closed_unmerged:
            return _Step(
                record,
                notes=(
                    f"Starter pull request #{pull.number} was closed without merging; "
                    "reopen and merge it to continue",
                ),
            )
        if self.auto_merge_starter:
            return _Step(
                record,
                actions=(
                    self._action(record, ActionKind.MERGE_PR, pull_number=pull.number),
                ),
                notes=(f"Merging starter pull request #{pull.number}",),
            )
        return _Step(record, notes=(f"Merge starter pull request #{pull.number} to continue",))

    def _in_progress(self, record: ProgressRecord, inputs: _Inputs) -> _Step:
        issue = inputs.remote.issue
        if issue is None or not issue.is_closed:
            if record.phase is ChapterPhase.COMPLETED:
                return _Step(replace(record, phase=ChapterPhase.IN_PROGRESS))
            return _Step(record)
        finished = inputs.quest.is_last(record.chapter_index)
        note = (
            "Quest finished"
            if finished
            else f"Chapter {record.chapter_index + 1} completed; advancing"
        )
        return _Step(
            record.advanced(finished=finished),
            actions=(self._action(record, ActionKind.ADVANCE_CHAPTER),),
            notes=(note,),
        )

    def _drifted(self, record: ProgressRecord, chapter: Chapter, inputs: _Inputs) -> _Step:
        if record.phase is not ChapterPhase.RESETTING:
            return self._enter_reset(record, chapter, ResetKind.STARTER)

        pull = inputs.remote.reset_pull
        if pull is None:
            return _Step(record, notes=("Waiting for the reset pull request to appear",))
        if pull.is_open:
            return _Step(
                record,
                notes=(f"Merge reset pull request #{pull.number} to restore the starter code",),
            )
        if pull.is_merged and inputs.local.is_behind:
            return _Step(
                record,
                notes=(f"Pull the merged reset #{pull.number} into your working copy",),
            )
        # The episode ended (merged and pulled, or rejected) and the copy still drifts.
        return self._enter_reset(record, chapter, ResetKind.STARTER)

    def _enter_reset(self, record: ProgressRecord, chapter: Chapter, kind: ResetKind) -> _Step:
        if kind is ResetKind.STARTER and record.baseline_index is None:
            # Nothing protected has landed, so there is no known-good state to restore.
            return _Step(record, notes=("No starter code has landed yet; nothing to reset",))
        resetting = replace(
            record,
            phase=ChapterPhase.RESETTING,
            reset_attempt=record.reset_attempt + 1,
            reset_kind=kind,
            reset_pull_number=None,
        )
        reason = (
            "Filing the reference solution"
            if kind is ResetKind.SOLUTION
            else "Protected starter code was modified; filing a hard reset"
        )
        return _Step(
            resetting,
            actions=(self._action(resetting, ActionKind.FILE_RESET_PR, reset_kind=kind),),
            notes=(f"{reason} for chapter {chapter.index + 1}",),
        )

    def _resetting(self, record: ProgressRecord, chapter: Chapter, inputs: _Inputs) -> _Step:
        pull = inputs.remote.reset_pull
        if pull is None:
            return _Step(record, notes=("Waiting for the reset pull request to appear",))
        if pull.is_open:
            return _Step(record, notes=(f"Merge reset pull request #{pull.number}",))
        if pull.is_merged and inputs.local.is_behind:
            return _Step(
                record,
                notes=(f"Pull the merged reset #{pull.number} into your working copy",),
            )

        solution = record.reset_kind is ResetKind.SOLUTION and pull.is_merged
        rederived = self._rederive(record, chapter, inputs, solution=solution)
        issue = inputs.remote.issue
        if solution and issue is not None and not issue.is_closed:
            return _Step(
                rederived,
                actions=(
                    self._action(
                        rederived,
                        ActionKind.CLOSE_ISSUE,
                        issue_number=issue.number,
                    ),
                ),
                notes=(f"Reference solution merged; closing issue #{issue.number}",),
            )
        return _Step(rederived)

    def _rederive(
        self,
        record: ProgressRecord,
        chapter: Chapter,
        inputs: _Inputs,
        *,
        solution: bool,
    ) -> ProgressRecord:
        """Return the phase the chapter's normal rules imply after a reset."""

        base = replace(record, reset_kind=None, reset_pull_number=None)
        if solution:
            baseline = chapter.index if chapter.has_starter else record.baseline_index
            return replace(base, phase=ChapterPhase.IN_PROGRESS, baseline_index=baseline)

        remote = inputs.remote
        if remote.issue is None and record.issue_number is None:
            return replace(base, phase=ChapterPhase.NOT_STARTED)

        starter_landed = record.baseline_index == chapter.index or (
            remote.starter_pull is not None and remote.starter_pull.is_merged
        )
        if chapter.has_starter and not starter_landed:
            starter_known = (
                remote.starter_pull is not None or record.starter_pull_number is not None
            )
            phase = ChapterPhase.STARTER_AVAILABLE if starter_known else ChapterPhase.ISSUE_FILED
            return replace(base, phase=phase)

        baseline = chapter.index if chapter.has_starter else record.baseline_index
        return replace(base, phase=ChapterPhase.IN_PROGRESS, baseline_index=baseline)

    # -- helpers ------------------------------------------------------------------

    @staticmethod
    def _adopt(record: ProgressRecord, remote: RemoteObservation) -> ProgressRecord:
        """Record artifact numbers the reader found by identity marker."""

        updates: dict[str, int] = {}
        if record.issue_number is None and remote.issue is not None:
            updates["issue_number"] = remote.issue.number
        if record.starter_pull_number is None and remote.starter_pull is not None:
            updates["starter_pull_number"] = remote.starter_pull.number
        if (
            record.phase is ChapterPhase.RESETTING
            and record.reset_pull_number is None
            and remote.reset_pull is not None
        ):
            updates["reset_pull_number"] = remote.reset_pull.number
        if not updates:
            return record
        return replace(record, **updates)

    @staticmethod
    def _action(
        record: ProgressRecord,
        kind: ActionKind,
        *,
        reset_kind: ResetKind | None = None,
        pull_number: int | None = None,
        issue_number: int | None = None,
    ) -> Action:
        return Action(
            kind=kind,
            key=action_key(record, kind),
            chapter_index=record.chapter_index,
            reset_kind=reset_kind,
            pull_number=pull_number,
            issue_number=issue_number,
        )
