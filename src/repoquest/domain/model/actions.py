"""Actions decided by the state machine and carried out by the dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from repoquest.domain.model.enums import ActionKind, ResetKind

if TYPE_CHECKING:
    from repoquest.domain.model.progress import ProgressRecord


@dataclass(frozen=True, slots=True, kw_only=True)
class ActionKey:
    """Deterministic identity of a remote artifact.

    Derived from the instance, chapter, and action kind; ``attempt`` separates
    successive reset episodes of the same chapter.
    """

    instance_id: str
    chapter_index: int
    kind: ActionKind
    attempt: int = 0

    def render(self) -> str:
        base = f"repoquest:{self.instance_id}:{self.chapter_index}:{self.kind}"
        if self.attempt:
            return f"{base}:{self.attempt}"
        return base

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True, slots=True, kw_only=True)
class Action:
    kind: ActionKind
    key: ActionKey
    chapter_index: int
    reset_kind: ResetKind | None = None
    pull_number: int | None = None
    issue_number: int | None = None

    def describe(self) -> str:
        detail = ""
        if self.reset_kind is not None:
            detail = f" ({self.reset_kind})"
        elif self.pull_number is not None:
            detail = f" (#{self.pull_number})"
        return f"{self.kind}{detail} for chapter {self.chapter_index + 1}"


@dataclass(frozen=True, slots=True, kw_only=True)
class Transition:
    """Outcome of one state machine decision.

    ``record`` is the target record before persistence; its ``revision`` still
    equals ``expected_revision`` and the dispatcher bumps it on save.
    """

    expected_revision: int
    previous: ProgressRecord
    record: ProgressRecord
    actions: tuple[Action, ...] = ()
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def changes_record(self) -> bool:
        return self.record != self.previous

    @property
    def is_noop(self) -> bool:
        return not self.actions and not self.changes_record
