"""Authored quest data and the learner's running instance of it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

UPSTREAM_REMOTE = "upstream"


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> RepositoryRef:
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Repository must look like 'owner/name', got {value!r}")
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True, slots=True)
class IssueTemplate:
    title: str
    body: str = ""


@dataclass(frozen=True, slots=True, kw_only=True)
class Chapter:
    """One step of a quest. Authored ahead of time and never mutated."""

    index: int
    label: str
    title: str
    issue: IssueTemplate
    starter_ref: str | None = None
    solution_ref: str | None = None
    protected_paths: tuple[str, ...] = ()

    @property
    def has_starter(self) -> bool:
        return self.starter_ref is not None


@dataclass(frozen=True, slots=True)
class Quest:
    """Ordered chapters of an authored exercise, identified by its template repository."""

    title: str
    template: RepositoryRef
    chapters: tuple[Chapter, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.chapters:
            raise ValueError("A quest needs at least one chapter")
        for position, chapter in enumerate(self.chapters):
            if chapter.index != position:
                raise ValueError(
                    f"Chapter {chapter.label!r} has index {chapter.index}, expected {position}"
                )
        labels = [chapter.label for chapter in self.chapters]
        if len(set(labels)) != len(labels):
            raise ValueError("Chapter labels must be unique")

    def __len__(self) -> int:
        return len(self.chapters)

    def chapter(self, index: int) -> Chapter:
        if not 0 <= index < len(self.chapters):
            raise IndexError(f"Quest {self.title!r} has no chapter {index}")
        return self.chapters[index]

    def is_last(self, index: int) -> bool:
        return index == len(self.chapters) - 1

    def chapters_through(self, index: int) -> tuple[Chapter, ...]:
        """Return the chapters up to and including ``index``."""

        return self.chapters[: self.chapter(index).index + 1]


@dataclass(frozen=True, slots=True, kw_only=True)
class QuestInstance:
    """The learner's clone of a quest: where it lives locally and remotely."""

    id: str
    path: Path
    repository: RepositoryRef
    quest: Quest
    default_branch: str = "main"
    work_branch: str | None = None

    @property
    def learner_branch(self) -> str:
        return self.work_branch or self.default_branch

    @property
    def upstream_ref(self) -> str:
        return f"origin/{self.default_branch}"

    def template_ref(self, name: str) -> str:
        """Resolve a template branch name to the ref fetched from the template remote."""

        return f"{UPSTREAM_REMOTE}/{name}"
