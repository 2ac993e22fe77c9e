"""Application wiring: build the orchestrator and quest instances from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.adapters.git import GitClient, git_client_for, repository_from_remote
from repoquest.adapters.github import GitHubForge, GitHubTemplateReader
from repoquest.adapters.quest_package import (
    QuestPackageError,
    load_quest_file,
    load_quest_from_clone,
    load_quest_from_template,
)
from repoquest.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyProgressUnitOfWork,
    is_started,
    startup,
)
from repoquest.config import get_github_config, get_orchestrator_config
from repoquest.domain.errors import LocalUnavailable
from repoquest.domain.model import QuestInstance, RepositoryRef
from repoquest.domain.model.quest import UPSTREAM_REMOTE
from repoquest.domain.orchestration import QuestOrchestrator

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from repoquest.config import GitHubConfig, OrchestratorConfig
    from repoquest.domain.model import Quest
    from repoquest.domain.ports import ForgeClient, GitFactory, ProgressUnitOfWork

type UnitOfWorkFactory = Callable[[], ProgressUnitOfWork]

log = getLogger(__name__)


@dataclass(slots=True)
class QuestSession:
    """An orchestrator with one registered instance, as the CLI drives it."""

    orchestrator: QuestOrchestrator
    instance: QuestInstance
    config: OrchestratorConfig


def build_orchestrator(
    *,
    config: OrchestratorConfig | None = None,
    forge: ForgeClient | None = None,
    git_factory: GitFactory | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    github_config: GitHubConfig | None = None,
) -> QuestOrchestrator:
    """Create a ``QuestOrchestrator`` on the configured adapters."""

    effective_config = config or get_orchestrator_config()
    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemyProgressUnitOfWork
    effective_forge = forge or GitHubForge(config=github_config or get_github_config())
    return QuestOrchestrator(
        forge=effective_forge,
        git_factory=git_factory or git_client_for,
        unit_of_work_factory=unit_of_work_factory,
        whitespace_policy=effective_config.whitespace_policy,
        auto_merge_starter=effective_config.auto_merge_starter,
        max_rederive_attempts=effective_config.max_rederive_attempts,
    )


def load_quest(
    repo_path: Path,
    *,
    quest_file: Path | None = None,
    template: RepositoryRef | None = None,
    github_config: GitHubConfig | None = None,
) -> Quest:
    """Load the quest for a clone.

    Order: an explicit package file, the clone's ``meta`` branch, then the
    template repository when one is named.
    """

    if quest_file is not None:
        return load_quest_file(quest_file)
    try:
        return load_quest_from_clone(GitClient(repo_path))
    except QuestPackageError:
        if template is None:
            raise
        log.info("No quest package in %s, reading it from %s", repo_path, template)
    reader = GitHubTemplateReader(config=github_config or get_github_config())
    return load_quest_from_template(reader, template)


def describe_instance(
    repo_path: Path,
    quest: Quest,
    *,
    repository: RepositoryRef | None = None,
    default_branch: str = "main",
) -> QuestInstance:
    """Build the ``QuestInstance`` for a local clone, reading ``origin`` when needed."""

    resolved = repo_path.expanduser().resolve()
    if repository is None:
        repository = repository_from_remote(GitClient(resolved).remote_url())
    return QuestInstance(
        id=repository.full_name,
        path=resolved,
        repository=repository,
        quest=quest,
        default_branch=default_branch,
    )


def open_session(
    repo_path: Path,
    *,
    quest_file: Path | None = None,
    template: str | None = None,
    repository: str | None = None,
    config: OrchestratorConfig | None = None,
    forge: ForgeClient | None = None,
    git_factory: GitFactory | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> QuestSession:
    """Load the quest for ``repo_path`` and register it with a new orchestrator."""

    effective_config = config or get_orchestrator_config()
    github_config = None if forge is not None else get_github_config()
    quest = load_quest(
        repo_path,
        quest_file=quest_file,
        template=RepositoryRef.parse(template) if template else None,
        github_config=github_config,
    )
    instance = describe_instance(
        repo_path,
        quest,
        repository=RepositoryRef.parse(repository) if repository else None,
    )
    _refresh_template_refs(git_factory or git_client_for, instance)

    orchestrator = build_orchestrator(
        config=effective_config,
        forge=forge,
        git_factory=git_factory,
        unit_of_work_factory=unit_of_work_factory,
        github_config=github_config,
    )
    orchestrator.register(instance)
    log.info(
        "Opened quest %r for %s (%s chapters)",
        quest.title,
        instance.id,
        len(quest),
    )
    return QuestSession(orchestrator=orchestrator, instance=instance, config=effective_config)


def _refresh_template_refs(git_factory: GitFactory, instance: QuestInstance) -> None:
    try:
        git_factory(instance).fetch(UPSTREAM_REMOTE)
    except LocalUnavailable as exc:
        log.warning("Could not fetch template refs from %s: %s", UPSTREAM_REMOTE, exc)
