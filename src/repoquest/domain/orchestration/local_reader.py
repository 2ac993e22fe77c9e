"""Read the state of the learner's working copy."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.domain.errors import LocalUnavailable
from repoquest.domain.model import LocalObservation

if TYPE_CHECKING:
    from repoquest.domain.model import QuestInstance
    from repoquest.domain.ports import GitFactory

log = getLogger(__name__)


@dataclass(slots=True)
class LocalStateReader:
    git_factory: GitFactory
    fetch_remote: bool = True

    def observe(self, instance: QuestInstance) -> LocalObservation:
        git = self.git_factory(instance)
        if self.fetch_remote:
            try:
                git.fetch()
            except LocalUnavailable as exc:
                # Ahead/behind counts fall back to the last fetched refs.
                log.warning("Could not fetch origin for %s: %s", instance.id, exc)
        ahead, behind = git.ahead_behind(instance.upstream_ref)
        return LocalObservation(
            head_commit=git.head_commit(),
            dirty=git.is_dirty(),
            ahead=ahead,
            behind=behind,
        )
