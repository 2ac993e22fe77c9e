"""The persisted progress record: the only state the orchestrator owns."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from repoquest.domain.model.enums import ChapterPhase, ResetKind

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class ProgressRecord:
    """Where a quest instance stands between poll cycles.

    ``revision`` is bumped on every save and doubles as the compare-and-swap
    token; a record with revision 0 has never been persisted. The artifact
    numbers belong to the current chapter and are cleared when it advances.
    ``baseline_index`` names the chapter whose starter code the working copy is
    known to be built on; ``None`` until the first starter lands.
    """

    instance_id: str
    chapter_index: int = 0
    phase: ChapterPhase = ChapterPhase.NOT_STARTED
    revision: int = 0
    issue_number: int | None = None
    starter_pull_number: int | None = None
    reset_pull_number: int | None = None
    reset_attempt: int = 0
    reset_kind: ResetKind | None = None
    baseline_index: int | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.chapter_index < 0:
            raise ValueError("Chapter index must be non-negative")
        if self.revision < 0:
            raise ValueError("Revision must be non-negative")

    @classmethod
    def initial(cls, instance_id: str) -> ProgressRecord:
        return cls(instance_id=instance_id)

    @property
    def is_persisted(self) -> bool:
        return self.revision > 0

    def advanced(self, *, finished: bool) -> ProgressRecord:
        """Return the record for the next chapter (or the terminal state)."""

        if finished:
            return replace(self, phase=ChapterPhase.FINISHED, reset_kind=None)
        return replace(
            self,
            chapter_index=self.chapter_index + 1,
            phase=ChapterPhase.NOT_STARTED,
            issue_number=None,
            starter_pull_number=None,
            reset_pull_number=None,
            reset_attempt=0,
            reset_kind=None,
        )
