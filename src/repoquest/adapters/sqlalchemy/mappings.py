"""SQLAlchemy table metadata for persisted quest progress."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Dialect,
    Enum,
    Integer,
    String,
    Table,
    TypeDecorator,
    orm,
)

from repoquest.domain.model import ChapterPhase, ResetKind

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

progress_record_table = Table(
    "progress_record",
    mapper_registry.metadata,
    Column("instance_id", String, primary_key=True),
    Column("chapter_index", Integer, nullable=False, default=0),
    Column("phase", Enum(ChapterPhase, native_enum=False, length=32), nullable=False),
    Column("revision", Integer, nullable=False),
    Column("issue_number", Integer, nullable=True),
    Column("starter_pull_number", Integer, nullable=True),
    Column("reset_pull_number", Integer, nullable=True),
    Column("reset_attempt", Integer, nullable=False, default=0),
    Column("reset_kind", Enum(ResetKind, native_enum=False, length=16), nullable=True),
    Column("baseline_index", Integer, nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    CheckConstraint("chapter_index >= 0", name="chapter_index_non_negative"),
    CheckConstraint("revision > 0", name="revision_positive"),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
