"""Port for the remote code-hosting service (the forge)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repoquest.domain.model import IssueSnapshot, PullSnapshot, RepositoryRef


@runtime_checkable
class ForgeClient(Protocol):
    """Issue, pull request, label, and branch operations on one forge.

    Implementations raise ``RemoteUnavailable`` on transport failures,
    ``ArtifactNotFound`` for unknown numbers, and ``ArtifactExists`` when a
    create collides with an existing artifact. Every call must be safe to retry.
    """

    def get_issue(self, repository: RepositoryRef, number: int) -> IssueSnapshot: ...

    def list_issues(self, repository: RepositoryRef) -> Sequence[IssueSnapshot]: ...

    def create_issue(
        self,
        repository: RepositoryRef,
        *,
        title: str,
        body: str,
        labels: Sequence[str] = (),
    ) -> IssueSnapshot: ...

    def close_issue(self, repository: RepositoryRef, number: int) -> IssueSnapshot: ...

    def get_pull(self, repository: RepositoryRef, number: int) -> PullSnapshot: ...

    def list_pulls(self, repository: RepositoryRef) -> Sequence[PullSnapshot]: ...

    def create_pull(
        self,
        repository: RepositoryRef,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
        labels: Sequence[str] = (),
    ) -> PullSnapshot: ...

    def merge_pull(self, repository: RepositoryRef, number: int) -> PullSnapshot: ...

    def list_labels(self, repository: RepositoryRef, number: int) -> frozenset[str]: ...

    def set_labels(self, repository: RepositoryRef, number: int, labels: Sequence[str]) -> None: ...

    def get_branch_head(self, repository: RepositoryRef, branch: str) -> str | None: ...
