"""Ports for persisting progress records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from repoquest.domain.model import ProgressRecord


@runtime_checkable
class ProgressRepository(Protocol):
    """Compare-and-swap store for progress records."""

    def load(self, instance_id: str) -> ProgressRecord | None: ...

    def save(self, record: ProgressRecord, *, expected_revision: int) -> ProgressRecord:
        """Persist ``record`` if the stored revision equals ``expected_revision``.

        Returns the stored record with ``revision == expected_revision + 1``;
        raises ``StaleRevision`` otherwise. ``expected_revision == 0`` means the
        record must not exist yet.
        """
        ...
