"""Load authored quests from ``rqst.toml`` packages.

A package looks like::

    title = "Build a parser"
    template = "quests/parser-template"

    [[chapters]]
    label = "chapter-1"
    title = "Tokens"
    starter_ref = "01-tokens-a"
    solution_ref = "01-tokens-b"
    protected_paths = ["src/lexer.py"]

    [chapters.issue]
    title = "Chapter 1: Tokens"
    body = "Implement the lexer."

Chapters are indexed in file order. Packages are read from a local file, from
the learner clone's ``meta`` branch, or from the template repository.
"""

from __future__ import annotations

import tomllib
from logging import getLogger
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repoquest.config.errors import ConfigurationError
from repoquest.domain.model import Chapter, IssueTemplate, Quest, RepositoryRef

if TYPE_CHECKING:
    from pathlib import Path

    from repoquest.adapters.github.templates import GitHubTemplateReader
    from repoquest.domain.ports import LocalGit

log = getLogger(__name__)

PACKAGE_FILENAME = "rqst.toml"
META_REF = "origin/meta"
TEMPLATE_META_BRANCH = "meta"


class QuestPackageError(ConfigurationError):
    """Raised when a quest package is missing or malformed."""


class PackageModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class IssueTemplateModel(PackageModel):
    title: str
    body: str = ""


class ChapterModel(PackageModel):
    label: str = Field(min_length=1)
    title: str
    issue: IssueTemplateModel
    starter_ref: str | None = None
    solution_ref: str | None = None
    protected_paths: tuple[str, ...] = ()

    @field_validator("protected_paths", mode="after")
    @classmethod
    def _normalize_paths(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        paths = tuple(path.strip().lstrip("/") for path in value if path.strip())
        for path in paths:
            if ".." in PurePosixPath(path).parts:
                raise ValueError(f"protected path {path!r} must stay inside the repository")
        return paths


class QuestPackageModel(PackageModel):
    title: str
    template: str
    chapters: list[ChapterModel] = Field(min_length=1)


def parse_quest_package(text: str, *, source: str = PACKAGE_FILENAME) -> Quest:
    """Parse package TOML into a ``Quest``."""

    try:
        raw = tomllib.loads(text)
        package = QuestPackageModel.model_validate(raw)
        return _to_quest(package)
    except tomllib.TOMLDecodeError as exc:
        raise QuestPackageError(f"{source} is not valid TOML: {exc}") from exc
    except ValidationError as exc:
        raise QuestPackageError(f"{source} is not a valid quest package:\n{exc}") from exc
    except ValueError as exc:
        raise QuestPackageError(f"{source}: {exc}") from exc


def _to_quest(package: QuestPackageModel) -> Quest:
    chapters = tuple(
        Chapter(
            index=index,
            label=chapter.label,
            title=chapter.title,
            issue=IssueTemplate(title=chapter.issue.title, body=chapter.issue.body),
            starter_ref=chapter.starter_ref,
            solution_ref=chapter.solution_ref,
            protected_paths=chapter.protected_paths,
        )
        for index, chapter in enumerate(package.chapters)
    )
    return Quest(
        title=package.title,
        template=RepositoryRef.parse(package.template),
        chapters=chapters,
    )


def load_quest_file(path: Path) -> Quest:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise QuestPackageError(f"Could not read quest package {path}: {exc}") from exc
    return parse_quest_package(text, source=str(path))


def load_quest_from_clone(git: LocalGit, *, ref: str = META_REF) -> Quest:
    """Read the package the clone was initialised with from its meta branch."""

    text = git.read_file(PACKAGE_FILENAME, ref=ref)
    if text is None:
        raise QuestPackageError(f"No {PACKAGE_FILENAME} found at {ref}")
    return parse_quest_package(text, source=f"{ref}:{PACKAGE_FILENAME}")


def load_quest_from_template(
    reader: GitHubTemplateReader,
    template: RepositoryRef,
    *,
    ref: str = TEMPLATE_META_BRANCH,
) -> Quest:
    """Read the package published on the template repository."""

    text = reader.read_file(template, PACKAGE_FILENAME, ref=ref)
    if text is None:
        raise QuestPackageError(f"{template} has no {PACKAGE_FILENAME} on {ref}")
    log.debug("Loaded quest package from %s@%s", template, ref)
    return parse_quest_package(text, source=f"{template}@{ref}:{PACKAGE_FILENAME}")
