"""Translate GitHub payloads into domain snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING

from repoquest.domain.model import IssueSnapshot, IssueState, PullSnapshot, PullState
from repoquest.domain.orchestration.identity import parse_key

from .schema import IssuePayload, PullPayload

if TYPE_CHECKING:
    from collections.abc import Mapping


def parse_issue(payload: IssuePayload | Mapping[str, object]) -> IssueSnapshot:
    issue = payload if isinstance(payload, IssuePayload) else IssuePayload.model_validate(payload)
    return IssueSnapshot(
        number=issue.number,
        state=IssueState(issue.state),
        title=issue.title,
        labels=frozenset(label.name for label in issue.labels),
        key=parse_key(issue.body),
    )


def parse_pull(payload: PullPayload | Mapping[str, object]) -> PullSnapshot:
    pull = payload if isinstance(payload, PullPayload) else PullPayload.model_validate(payload)
    if pull.is_merged:
        state = PullState.MERGED
    elif pull.state == "closed":
        state = PullState.CLOSED
    else:
        state = PullState.OPEN
    return PullSnapshot(
        number=pull.number,
        state=state,
        head_branch=pull.head.ref,
        title=pull.title,
        labels=frozenset(label.name for label in pull.labels),
        key=parse_key(pull.body),
    )
