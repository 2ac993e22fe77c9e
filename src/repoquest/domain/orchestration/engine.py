"""Poll cycle driver and the surface the UI talks to.

One cycle reads the progress record, observes the forge and the clone,
classifies the working copy, decides, and dispatches. Cycles of one instance
never overlap: a poll requested while another is in flight waits for it and
reports its outcome. Instances share no state with each other.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, wait
from dataclasses import dataclass, field, replace
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.domain.errors import (
    ActionConflict,
    ActionFatal,
    LocalUnavailable,
    ProgressUnavailable,
    QuestError,
    RemoteInconsistent,
    RemoteUnavailable,
)
from repoquest.domain.model import ChapterPhase, ProgressRecord, WhitespacePolicy

from .conflict import ConflictDetector
from .dispatcher import ActionDispatcher
from .local_reader import LocalStateReader
from .remote_reader import RemoteStateReader
from .state_machine import QuestStateMachine

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from repoquest.domain.model import ConflictVerdict, QuestInstance, Transition
    from repoquest.domain.ports import ForgeClient, GitFactory, ProgressUnitOfWork

log = getLogger(__name__)

DEFAULT_MAX_REDERIVE_ATTEMPTS = 2


class PollStatus(StrEnum):
    OK = "ok"
    WARNING = "warning"
    HALTED = "halted"
    SKIPPED = "skipped"
    COALESCED = "coalesced"


@dataclass(frozen=True, slots=True, kw_only=True)
class PollOutcome:
    """Result of one poll request."""

    instance_id: str
    status: PollStatus
    record: ProgressRecord | None = None
    transition: Transition | None = None
    error: QuestError | None = None

    @property
    def notes(self) -> tuple[str, ...]:
        if self.transition is None:
            return ()
        return self.transition.notes


@dataclass(frozen=True, slots=True, kw_only=True)
class QuestStatus:
    """What the UI shows for one instance."""

    instance_id: str
    chapter_index: int
    phase: ChapterPhase
    revision: int
    last_verdict: ConflictVerdict | None = None
    last_error: str | None = None
    halted: bool = False
    notes: tuple[str, ...] = ()

    @property
    def finished(self) -> bool:
        return self.phase is ChapterPhase.FINISHED


type StatusListener = Callable[[QuestStatus], None]


@dataclass(slots=True)
class _Slot:
    """Per-instance cycle state. ``guard`` protects ``inflight``."""

    instance: QuestInstance
    dispatcher: ActionDispatcher
    guard: threading.Lock = field(default_factory=threading.Lock)
    inflight: Future[PollOutcome] | None = None
    record: ProgressRecord | None = None
    verdict: ConflictVerdict | None = None
    error: QuestError | None = None
    halted: bool = False
    notes: tuple[str, ...] = ()


class QuestOrchestrator:
    """Drive quest instances from observed remote and local state."""

    def __init__(
        self,
        *,
        forge: ForgeClient,
        git_factory: GitFactory,
        unit_of_work_factory: Callable[[], ProgressUnitOfWork],
        whitespace_policy: WhitespacePolicy = WhitespacePolicy.IGNORE_TRAILING,
        auto_merge_starter: bool = False,
        max_rederive_attempts: int = DEFAULT_MAX_REDERIVE_ATTEMPTS,
        fetch_remote: bool = True,
    ) -> None:
        self._forge = forge
        self._git_factory = git_factory
        self._unit_of_work_factory = unit_of_work_factory
        self._remote_reader = RemoteStateReader(forge)
        self._local_reader = LocalStateReader(git_factory, fetch_remote=fetch_remote)
        self._detector = ConflictDetector(git_factory, whitespace_policy)
        self._machine = QuestStateMachine(auto_merge_starter=auto_merge_starter)
        self._max_rederive_attempts = max_rederive_attempts
        self._slots: dict[str, _Slot] = {}
        self._listeners: list[StatusListener] = []

    # -- registration and subscription --------------------------------------------

    def register(self, instance: QuestInstance) -> None:
        if instance.id in self._slots:
            raise ValueError(f"Quest instance {instance.id!r} is already registered")
        dispatcher = ActionDispatcher(
            instance=instance,
            forge=self._forge,
            git_factory=self._git_factory,
            unit_of_work_factory=self._unit_of_work_factory,
        )
        self._slots[instance.id] = _Slot(instance=instance, dispatcher=dispatcher)
        log.debug("Registered quest instance %s at %s", instance.id, instance.path)

    @property
    def instance_ids(self) -> tuple[str, ...]:
        return tuple(self._slots)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call ``listener`` with the new status after every cycle."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- public operations --------------------------------------------------------

    def current_state(self, instance_id: str) -> QuestStatus:
        slot = self._slot(instance_id)
        if slot.record is None:
            slot.record = self._load(slot.instance)
        return self._status(slot)

    def trigger_poll(self, instance_id: str, *, manual: bool = False) -> PollOutcome:
        """Run one cycle, or join the cycle already in flight for the instance."""

        return self._run(self._slot(instance_id), manual=manual, solution=False)

    def request_reference_solution(self, instance_id: str) -> PollOutcome:
        """Run a cycle that files the reference solution for the current chapter."""

        return self._run(self._slot(instance_id), manual=True, solution=True)

    def acknowledge(self, instance_id: str) -> QuestStatus:
        """Clear a halt without polling."""

        slot = self._slot(instance_id)
        if slot.halted:
            log.info("Halt of %s acknowledged", instance_id)
        slot.halted = False
        slot.error = None
        status = self.current_state(instance_id)
        self._notify(status)
        return status

    def run_forever(
        self,
        instance_ids: Iterable[str] | None = None,
        *,
        interval: float,
        stop_event: threading.Event,
    ) -> None:
        """Poll ``instance_ids`` (all registered by default) until ``stop_event`` is set."""

        ids = tuple(instance_ids) if instance_ids is not None else self.instance_ids
        for instance_id in ids:
            self._slot(instance_id)
        log.info("Polling %s every %.1fs", ", ".join(ids), interval)
        while not stop_event.is_set():
            for instance_id in ids:
                if stop_event.is_set():
                    break
                self.trigger_poll(instance_id)
            stop_event.wait(interval)

    # -- cycle --------------------------------------------------------------------

    def _run(self, slot: _Slot, *, manual: bool, solution: bool) -> PollOutcome:
        while True:
            with slot.guard:
                running = slot.inflight
                if running is None:
                    if slot.halted and not manual:
                        return PollOutcome(
                            instance_id=slot.instance.id,
                            status=PollStatus.SKIPPED,
                            record=slot.record,
                            error=slot.error,
                        )
                    future: Future[PollOutcome] = Future()
                    slot.inflight = future
                    break
            if not solution:
                return replace(running.result(), status=PollStatus.COALESCED)
            # A solution request needs its own cycle; wait for the current one.
            wait([running])

        try:
            outcome = self._cycle(slot, manual=manual, solution=solution)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(outcome)
        finally:
            with slot.guard:
                slot.inflight = None
        self._notify(self._status(slot))
        return outcome

    def _cycle(self, slot: _Slot, *, manual: bool, solution: bool) -> PollOutcome:
        instance_id = slot.instance.id
        if manual and slot.halted:
            log.info("Manual poll clears the halt of %s", instance_id)
            slot.halted = False

        attempts = 0
        while True:
            try:
                transition = self._decide(slot, solution=solution)
                result = slot.dispatcher.apply(transition)
            except ActionConflict as exc:
                attempts += 1
                if attempts > self._max_rederive_attempts:
                    log.warning(
                        "Giving up on %s after %s conflicts: %s", instance_id, attempts, exc
                    )
                    return self._fail(slot, PollStatus.WARNING, exc)
                log.info("Re-deriving %s after conflict: %s", instance_id, exc)
                continue
            except (RemoteUnavailable, LocalUnavailable, ProgressUnavailable) as exc:
                log.warning("Poll of %s failed: %s", instance_id, exc)
                return self._fail(slot, PollStatus.WARNING, exc)
            except RemoteInconsistent as exc:
                log.error("Halting %s: %s", instance_id, exc)
                slot.halted = True
                return self._fail(slot, PollStatus.HALTED, exc)
            except ActionFatal as exc:
                log.exception("Halting %s after a fatal action error", instance_id)
                slot.halted = True
                return self._fail(slot, PollStatus.HALTED, exc)

            slot.record = result.record
            slot.error = None
            slot.notes = transition.notes
            for note in transition.notes:
                log.info("%s: %s", instance_id, note)
            return PollOutcome(
                instance_id=instance_id,
                status=PollStatus.OK,
                record=result.record,
                transition=transition,
            )

    def _decide(self, slot: _Slot, *, solution: bool) -> Transition:
        instance = slot.instance
        record = self._load(instance)
        slot.record = record
        remote = self._remote_reader.observe(instance, record)
        local = self._local_reader.observe(instance)
        chapter = instance.quest.chapter(record.chapter_index)
        verdict = self._detector.evaluate(instance, chapter, baseline=record.baseline_index)
        slot.verdict = verdict
        return self._machine.decide(
            instance.quest,
            record,
            remote,
            local,
            verdict,
            solution_requested=solution,
        )

    # -- helpers ------------------------------------------------------------------

    def _slot(self, instance_id: str) -> _Slot:
        try:
            return self._slots[instance_id]
        except KeyError as exc:
            raise KeyError(f"Unknown quest instance {instance_id!r}") from exc

    def _load(self, instance: QuestInstance) -> ProgressRecord:
        with self._unit_of_work_factory() as uow:
            stored = uow.repositories.progress.load(instance.id)
        if stored is None:
            return ProgressRecord.initial(instance.id)
        return stored

    def _fail(self, slot: _Slot, status: PollStatus, error: QuestError) -> PollOutcome:
        slot.error = error
        slot.notes = ()
        return PollOutcome(
            instance_id=slot.instance.id,
            status=status,
            record=slot.record,
            error=error,
        )

    def _status(self, slot: _Slot) -> QuestStatus:
        record = slot.record or ProgressRecord.initial(slot.instance.id)
        return QuestStatus(
            instance_id=slot.instance.id,
            chapter_index=record.chapter_index,
            phase=record.phase,
            revision=record.revision,
            last_verdict=slot.verdict,
            last_error=str(slot.error) if slot.error is not None else None,
            halted=slot.halted,
            notes=slot.notes,
        )

    def _notify(self, status: QuestStatus) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(status)
            except Exception:
                log.exception("Status listener %r failed", listener)
