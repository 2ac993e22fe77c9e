"""Transaction boundary the dispatcher saves progress records through."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from repoquest.domain.ports.persistence import ProgressRepository


@runtime_checkable
class RepositoryCollection(Protocol):
    """Repositories that commit or roll back together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Context manager owning one transaction over ``repositories``.

    Leaving the block without ``commit`` rolls back.
    """

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class ProgressRepositories(RepositoryCollection):
    """Repositories required to track quest progress."""

    progress: ProgressRepository


type ProgressUnitOfWork = UnitOfWork[ProgressRepositories]
