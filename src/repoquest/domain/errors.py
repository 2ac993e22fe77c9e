"""Error taxonomy shared by the orchestrator, its ports, and its adapters.

The reconciliation computation itself never raises these; readers and the
dispatcher raise them at the I/O boundary and the engine maps each class onto a
poll outcome:

- ``RemoteUnavailable``: transient, retried on the next poll.
- ``RemoteInconsistent``: remote state contradicts the progress record; polling
  halts until the learner acknowledges or refreshes manually.
- ``ActionConflict``: another writer got there first; re-derive from fresh reads.
- ``ActionFatal``: invariant violation; polling halts pending investigation.
- ``LocalUnavailable``: the working copy could not be read; nothing is mutated.
- ``ProgressUnavailable``: the progress store failed; remote writes already made
  are adopted by key on the next poll.
"""

from __future__ import annotations


class QuestError(RuntimeError):
    """Base class for orchestration failures."""


class RemoteUnavailable(QuestError):
    """Raised when the forge cannot be reached or times out."""


class RemoteInconsistent(QuestError):
    """Raised when remote artifacts the progress record relies on are gone."""


class ActionConflict(QuestError):
    """Raised when a concurrent writer already produced the artifact or record."""


class StaleRevision(ActionConflict):
    """Raised when a transition was computed against an outdated progress revision."""

    def __init__(self, message: str, *, expected: int, actual: int | None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ActionFatal(QuestError):
    """Raised for policy violations that indicate a bug in the state machine."""


class LocalUnavailable(QuestError):
    """Raised when the local git capability or filesystem fails."""


class ProgressUnavailable(QuestError):
    """Raised when the progress store cannot be read or written."""


class ArtifactNotFound(QuestError):
    """Raised by forge ports when an issue, pull request, or ref does not exist."""


class ArtifactExists(QuestError):
    """Raised by forge ports when the artifact to create is already present."""


__all__ = [
    "ActionConflict",
    "ActionFatal",
    "ArtifactExists",
    "ArtifactNotFound",
    "LocalUnavailable",
    "ProgressUnavailable",
    "QuestError",
    "RemoteInconsistent",
    "RemoteUnavailable",
    "StaleRevision",
]
