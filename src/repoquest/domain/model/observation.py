"""Transient read results owned by a single poll cycle."""

from __future__ import annotations

from dataclasses import dataclass, field

from repoquest.domain.model.enums import IssueState, PullState


@dataclass(frozen=True, slots=True, kw_only=True)
class IssueSnapshot:
    number: int
    state: IssueState
    title: str = ""
    labels: frozenset[str] = field(default_factory=frozenset)
    key: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.state is IssueState.CLOSED


@dataclass(frozen=True, slots=True, kw_only=True)
class PullSnapshot:
    number: int
    state: PullState
    head_branch: str
    title: str = ""
    labels: frozenset[str] = field(default_factory=frozenset)
    key: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state is PullState.OPEN

    @property
    def is_merged(self) -> bool:
        return self.state is PullState.MERGED

    @property
    def is_closed_unmerged(self) -> bool:
        return self.state is PullState.CLOSED


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoteObservation:
    """What the forge shows for the current chapter at read time."""

    issue: IssueSnapshot | None = None
    starter_pull: PullSnapshot | None = None
    reset_pull: PullSnapshot | None = None
    default_head: str | None = None
    learner_head: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class LocalObservation:
    """What the working copy shows at read time."""

    head_commit: str
    dirty: bool = False
    ahead: int = 0
    behind: int = 0

    @property
    def is_behind(self) -> bool:
        return self.behind > 0
