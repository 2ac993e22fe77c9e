"""Domain port definitions for adapters."""

from __future__ import annotations

from .forge import ForgeClient
from .git import GitFactory, LocalGit, PreparedBranch
from .persistence import ProgressRepository
from .unit_of_work import (
    ProgressRepositories,
    ProgressUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "ForgeClient",
    "GitFactory",
    "LocalGit",
    "PreparedBranch",
    "ProgressRepositories",
    "ProgressRepository",
    "ProgressUnitOfWork",
    "RepositoryCollection",
    "UnitOfWork",
]
