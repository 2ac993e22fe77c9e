"""SQLAlchemy adapter package for RepoQuest progress storage."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, progress_record_table
from .repositories import SqlAlchemyProgressRepository
from .unit_of_work import (
    SqlAlchemyProgressUnitOfWork,
    StartupError,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyProgressRepository",
    "SqlAlchemyProgressUnitOfWork",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "progress_record_table",
    "shutdown",
    "startup",
]
