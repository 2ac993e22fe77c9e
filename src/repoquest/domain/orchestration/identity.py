"""Deterministic identities for remote artifacts.

Every issue and pull request the orchestrator files carries a marker in its
body. Before creating anything the dispatcher looks for that marker, so a
retried or repeated action adopts the existing artifact instead of filing a
duplicate.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from repoquest.domain.model import ActionKey, ActionKind

if TYPE_CHECKING:
    from repoquest.domain.model import Chapter, ProgressRecord

_MARKER_PREFIX = "<!-- repoquest-key: "
_MARKER_SUFFIX = " -->"
_MARKER_PATTERN = re.compile(r"<!--\s*repoquest-key:\s*(?P<key>\S+)\s*-->")

# Labels applied to filed artifacts; chapter labels come from the quest package.
STARTER_LABEL = "starter"
RESET_LABEL = "reset"
SOLUTION_LABEL = "solution"


def action_key(
    record: ProgressRecord,
    kind: ActionKind,
    *,
    attempt: int | None = None,
) -> ActionKey:
    """Return the identity of ``kind`` for the record's current chapter."""

    if attempt is None:
        attempt = record.reset_attempt if kind is ActionKind.FILE_RESET_PR else 0
    return ActionKey(
        instance_id=record.instance_id,
        chapter_index=record.chapter_index,
        kind=kind,
        attempt=attempt,
    )


def issue_key(record: ProgressRecord) -> ActionKey:
    return action_key(record, ActionKind.FILE_ISSUE)


def starter_key(record: ProgressRecord) -> ActionKey:
    return action_key(record, ActionKind.OPEN_STARTER_PR)


def reset_key(record: ProgressRecord) -> ActionKey:
    return action_key(record, ActionKind.FILE_RESET_PR)


def render_marker(key: ActionKey) -> str:
    return f"{_MARKER_PREFIX}{key.render()}{_MARKER_SUFFIX}"


def with_marker(body: str, key: ActionKey) -> str:
    """Append the identity marker to an artifact body."""

    marker = render_marker(key)
    stripped = body.rstrip()
    if not stripped:
        return marker
    return f"{stripped}\n\n{marker}"


def parse_key(body: str | None) -> str | None:
    """Return the rendered key embedded in ``body``, if any."""

    if not body:
        return None
    match = _MARKER_PATTERN.search(body)
    if match is None:
        return None
    return match.group("key")


def branch_name(chapter: Chapter, key: ActionKey) -> str:
    """Return the branch that carries the content of a pull request action."""

    suffix = "starter" if key.kind is ActionKind.OPEN_STARTER_PR else "reset"
    if key.attempt:
        suffix = f"{suffix}-{key.attempt}"
    return f"repoquest/{chapter.label}/{suffix}"


__all__ = [
    "RESET_LABEL",
    "SOLUTION_LABEL",
    "STARTER_LABEL",
    "action_key",
    "branch_name",
    "issue_key",
    "parse_key",
    "render_marker",
    "reset_key",
    "starter_key",
    "with_marker",
]
