"""Port for the learner's local git working copy."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from repoquest.domain.model import MergeType, QuestInstance


@dataclass(frozen=True, slots=True)
class PreparedBranch:
    """A branch pushed to ``origin`` and how its content was assembled."""

    branch: str
    head: str
    merge_type: MergeType


@runtime_checkable
class LocalGit(Protocol):
    """Read and branch operations on one clone.

    Methods raise ``LocalUnavailable`` when git or the filesystem fails.
    ``read_file`` returns ``None`` when the path does not exist at ``ref`` (or
    in the working copy when ``ref`` is ``None``).
    """

    def head_commit(self) -> str: ...

    def read_file(self, path: str, *, ref: str | None = None) -> str | None: ...

    def is_dirty(self) -> bool: ...

    def ahead_behind(self, ref: str) -> tuple[int, int]: ...

    def fetch(self, remote: str = "origin") -> None: ...

    def prepare_branch(
        self,
        branch: str,
        *,
        base: str,
        source_ref: str,
        since_ref: str | None = None,
    ) -> PreparedBranch: ...

    def prepare_override_branch(
        self,
        branch: str,
        *,
        base: str,
        source_ref: str,
        merge_type: MergeType,
    ) -> PreparedBranch: ...


type GitFactory = Callable[[QuestInstance], LocalGit]
