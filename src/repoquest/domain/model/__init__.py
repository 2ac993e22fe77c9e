"""Public domain model surface."""

from __future__ import annotations

from repoquest.domain.model.actions import Action, ActionKey, Transition
from repoquest.domain.model.enums import (
    ActionKind,
    ChapterPhase,
    ConflictVerdict,
    IssueState,
    MergeType,
    PullState,
    ResetKind,
    WhitespacePolicy,
)
from repoquest.domain.model.observation import (
    IssueSnapshot,
    LocalObservation,
    PullSnapshot,
    RemoteObservation,
)
from repoquest.domain.model.progress import ProgressRecord
from repoquest.domain.model.quest import (
    Chapter,
    IssueTemplate,
    Quest,
    QuestInstance,
    RepositoryRef,
)

__all__ = [
    "Action",
    "ActionKey",
    "ActionKind",
    "Chapter",
    "ChapterPhase",
    "ConflictVerdict",
    "IssueSnapshot",
    "IssueState",
    "IssueTemplate",
    "LocalObservation",
    "MergeType",
    "ProgressRecord",
    "PullSnapshot",
    "PullState",
    "Quest",
    "QuestInstance",
    "RemoteObservation",
    "RepositoryRef",
    "ResetKind",
    "Transition",
    "WhitespacePolicy",
]
