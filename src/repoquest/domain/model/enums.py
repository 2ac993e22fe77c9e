"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ChapterPhase(StrEnum):
    """Where the current chapter stands.

    ``COMPLETED`` is passed through inside a single decision: closing the
    chapter issue advances straight to the next chapter's ``NOT_STARTED``
    (or ``FINISHED``), so saved records never carry it. Records that do are
    treated like ``IN_PROGRESS``.
    """

    NOT_STARTED = "not_started"
    ISSUE_FILED = "issue_filed"
    STARTER_AVAILABLE = "starter_available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RESETTING = "resetting"
    FINISHED = "finished"

    @property
    def is_terminal(self) -> bool:
        return self is ChapterPhase.FINISHED


class ConflictVerdict(StrEnum):
    CLEAN = "clean"
    GAME_AREA_ONLY = "game_area_only"
    DRIFTED = "drifted"

    @property
    def is_safe(self) -> bool:
        return self is not ConflictVerdict.DRIFTED


class WhitespacePolicy(StrEnum):
    """How protected regions treat whitespace-only edits."""

    STRICT = "strict"
    IGNORE_TRAILING = "ignore_trailing"
    IGNORE_ALL = "ignore_all"


class IssueState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class PullState(StrEnum):
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


class ActionKind(StrEnum):
    FILE_ISSUE = "file_issue"
    OPEN_STARTER_PR = "open_starter_pr"
    MERGE_PR = "merge_pr"
    FILE_RESET_PR = "file_reset_pr"
    CLOSE_ISSUE = "close_issue"
    ADVANCE_CHAPTER = "advance_chapter"

    @property
    def writes_remote(self) -> bool:
        return self is not ActionKind.ADVANCE_CHAPTER


class ResetKind(StrEnum):
    """Which known-good state a hard reset restores."""

    STARTER = "starter"
    SOLUTION = "solution"


class MergeType(StrEnum):
    """How a branch was assembled from the template refs."""

    SUCCESS = "success"
    STARTER_RESET = "starter_reset"
    SOLUTION_RESET = "solution_reset"
