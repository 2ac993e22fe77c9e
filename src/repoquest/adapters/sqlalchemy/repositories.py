"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from repoquest.adapters.sqlalchemy.mappings import progress_record_table
from repoquest.domain.errors import ProgressUnavailable, StaleRevision
from repoquest.domain.model import ProgressRecord

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import Row
    from sqlalchemy.orm import Session

log = getLogger(__name__)

_COLUMNS = (
    "chapter_index",
    "phase",
    "issue_number",
    "starter_pull_number",
    "reset_pull_number",
    "reset_attempt",
    "reset_kind",
    "baseline_index",
    "updated_at",
)


class SqlAlchemyProgressRepository:
    """Compare-and-swap persistence of progress records.

    Updates are guarded by ``WHERE revision = :expected``; a zero row count means
    another writer saved first. Records are inserted when ``expected_revision``
    is 0, and a primary key collision counts as a stale revision too.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def load(self, instance_id: str) -> ProgressRecord | None:
        stmt = select(progress_record_table).where(
            progress_record_table.c.instance_id == instance_id
        )
        with store_errors(f"load progress of {instance_id}"):
            row = self.session.execute(stmt).one_or_none()
        if row is None:
            return None
        return _record_from_row(row)

    def save(self, record: ProgressRecord, *, expected_revision: int) -> ProgressRecord:
        with store_errors(f"save progress of {record.instance_id}"):
            return self._save(record, expected_revision=expected_revision)

    def _save(self, record: ProgressRecord, *, expected_revision: int) -> ProgressRecord:
        saved = replace(record, revision=expected_revision + 1)
        values = {column: getattr(saved, column) for column in _COLUMNS}

        if expected_revision == 0:
            if self.load(saved.instance_id) is not None:
                raise self._stale(saved.instance_id, expected_revision)
            try:
                self.session.execute(
                    insert(progress_record_table).values(
                        instance_id=saved.instance_id,
                        revision=saved.revision,
                        **values,
                    )
                )
            except IntegrityError as exc:
                self.session.rollback()
                raise self._stale(saved.instance_id, expected_revision) from exc
            log.debug("Created progress of %s", saved.instance_id)
            return saved

        result = self.session.execute(
            update(progress_record_table)
            .where(progress_record_table.c.instance_id == saved.instance_id)
            .where(progress_record_table.c.revision == expected_revision)
            .values(revision=saved.revision, **values)
        )
        if result.rowcount != 1:  # pyright: ignore[reportAttributeAccessIssue]
            raise self._stale(record.instance_id, expected_revision)
        log.debug("Saved progress of %s at revision %s", saved.instance_id, saved.revision)
        return saved

    def _stale(self, instance_id: str, expected: int) -> StaleRevision:
        current = self.load(instance_id)
        actual = current.revision if current is not None else None
        return StaleRevision(
            f"Progress of {instance_id} changed concurrently "
            f"(expected revision {expected}, found {actual})",
            expected=expected,
            actual=actual,
        )


@contextmanager
def store_errors(what: str) -> Iterator[None]:
    """Re-raise driver and SQL failures as ``ProgressUnavailable``."""

    try:
        yield
    except SQLAlchemyError as exc:
        raise ProgressUnavailable(f"Could not {what}: {exc}") from exc


def _record_from_row(row: Row[tuple[object, ...]]) -> ProgressRecord:
    data = row._mapping  # noqa: SLF001
    return ProgressRecord(
        instance_id=data["instance_id"],
        chapter_index=data["chapter_index"],
        phase=data["phase"],
        revision=data["revision"],
        issue_number=data["issue_number"],
        starter_pull_number=data["starter_pull_number"],
        reset_pull_number=data["reset_pull_number"],
        reset_attempt=data["reset_attempt"],
        reset_kind=data["reset_kind"],
        baseline_index=data["baseline_index"],
        updated_at=data["updated_at"],
    )
