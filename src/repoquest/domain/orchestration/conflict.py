"""Decide whether the learner's edits stayed inside the game area.

Protected files are the starter-code manifest of each chapter. Inside a
protected file, the learner may only edit between game-area marker lines::

    // rq:begin-game-area
    ... learner code ...
    // rq:end-game-area

A protected file matches if, with game areas masked out, it equals the starter
content of any chapter between the recorded baseline and the current chapter.
Accepting every not-yet-superseded starter keeps a learner who already pulled a
freshly merged starter from being flagged before the record catches up.

Reading happens in ``ConflictDetector.evaluate`` through the local git port;
``classify`` is the pure comparison and performs no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from repoquest.domain.model import ConflictVerdict, WhitespacePolicy

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from repoquest.domain.model import Chapter, Quest, QuestInstance
    from repoquest.domain.ports import GitFactory

log = getLogger(__name__)

BEGIN_GAME_AREA = "rq:begin-game-area"
END_GAME_AREA = "rq:end-game-area"
_MASK = "\x00game-area\x00"

_SEVERITY = {
    ConflictVerdict.CLEAN: 0,
    ConflictVerdict.GAME_AREA_ONLY: 1,
    ConflictVerdict.DRIFTED: 2,
}


def _normalize_trailing(text: str) -> str:
    lines = [line.rstrip() for line in text.splitlines()]
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def _normalize_all(text: str) -> str:
    return "".join(text.split())


_NORMALIZERS: dict[WhitespacePolicy, Callable[[str], str]] = {
    WhitespacePolicy.STRICT: lambda text: text,
    WhitespacePolicy.IGNORE_TRAILING: _normalize_trailing,
    WhitespacePolicy.IGNORE_ALL: _normalize_all,
}


def mask_game_areas(text: str) -> str:
    """Replace everything between game-area markers with a fixed placeholder.

    Marker lines themselves are kept so that deleting one counts as drift. An
    unterminated game area extends to the end of the file.
    """

    kept: list[str] = []
    inside = False
    for line in text.splitlines(keepends=True):
        if inside:
            if END_GAME_AREA in line:
                kept.append(line)
                inside = False
            continue
        kept.append(line)
        if BEGIN_GAME_AREA in line:
            kept.append(_MASK + "\n")
            inside = True
    return "".join(kept)


def compare_file(
    expected: str,
    actual: str,
    *,
    policy: WhitespacePolicy = WhitespacePolicy.IGNORE_TRAILING,
) -> ConflictVerdict:
    """Classify one protected file against one expected starter version."""

    if expected == actual:
        return ConflictVerdict.CLEAN
    normalize = _NORMALIZERS[policy]
    if normalize(expected) == normalize(actual):
        return ConflictVerdict.GAME_AREA_ONLY
    if normalize(mask_game_areas(expected)) == normalize(mask_game_areas(actual)):
        return ConflictVerdict.GAME_AREA_ONLY
    return ConflictVerdict.DRIFTED


def worst(*verdicts: ConflictVerdict) -> ConflictVerdict:
    return max(verdicts, key=_SEVERITY.__getitem__, default=ConflictVerdict.CLEAN)


def best(*verdicts: ConflictVerdict) -> ConflictVerdict:
    return min(verdicts, key=_SEVERITY.__getitem__, default=ConflictVerdict.DRIFTED)


def classify(
    expected: Mapping[str, Sequence[str]],
    actual: Mapping[str, str | None],
    *,
    policy: WhitespacePolicy = WhitespacePolicy.IGNORE_TRAILING,
    other_changes: bool = False,
) -> ConflictVerdict:
    """Classify the working copy against the acceptable starter versions.

    ``expected`` maps each protected path to the starter contents it may match;
    ``actual`` holds the working-copy content (``None`` when deleted).
    ``other_changes`` reports edits outside the protected files.
    """

    verdict = ConflictVerdict.GAME_AREA_ONLY if other_changes else ConflictVerdict.CLEAN
    for path, versions in expected.items():
        if not versions:
            continue
        content = actual.get(path)
        if content is None:
            log.info("Protected file %s is missing from the working copy", path)
            return ConflictVerdict.DRIFTED
        file_verdict = best(
            *(compare_file(version, content, policy=policy) for version in versions)
        )
        if file_verdict is ConflictVerdict.DRIFTED:
            log.info("Protected file %s diverges from its starter code", path)
            return ConflictVerdict.DRIFTED
        verdict = worst(verdict, file_verdict)
    return verdict


def acceptable_owners(
    quest: Quest,
    chapter: Chapter,
    baseline: int | None,
) -> dict[str, tuple[Chapter, ...]]:
    """Map each protected path to the chapters whose starter it may match.

    A path counts once the latest chapter at or before ``baseline`` that ships
    it has landed; later owners up to ``chapter`` are accepted as well.
    """

    if baseline is None:
        return {}
    owners: dict[str, list[Chapter]] = {}
    for candidate in quest.chapters_through(chapter.index):
        if not candidate.has_starter:
            continue
        for path in candidate.protected_paths:
            owners.setdefault(path, []).append(candidate)

    accepted: dict[str, tuple[Chapter, ...]] = {}
    for path, chapters in owners.items():
        landed = [owner for owner in chapters if owner.index <= baseline]
        if not landed:
            continue
        anchor = landed[-1].index
        accepted[path] = tuple(owner for owner in chapters if owner.index >= anchor)
    return accepted


@dataclass(slots=True)
class ConflictDetector:
    """Compute a ``ConflictVerdict`` for the current chapter from local reads only."""

    git_factory: GitFactory
    policy: WhitespacePolicy = WhitespacePolicy.IGNORE_TRAILING

    def evaluate(
        self,
        instance: QuestInstance,
        chapter: Chapter,
        *,
        baseline: int | None,
    ) -> ConflictVerdict:
        """Evaluate ``instance``'s working copy for ``chapter``.

        ``baseline`` is the progress record's baseline chapter; starters that
        have not landed yet are not enforced, and ``None`` enforces nothing.
        """

        owners = acceptable_owners(instance.quest, chapter, baseline)
        git = self.git_factory(instance)

        expected: dict[str, list[str]] = {}
        actual: dict[str, str | None] = {}
        for path, chapters in owners.items():
            versions: list[str] = []
            for owner in chapters:
                if owner.starter_ref is None:
                    continue
                content = git.read_file(path, ref=instance.template_ref(owner.starter_ref))
                if content is not None:
                    versions.append(content)
            if not versions:
                continue
            expected[path] = versions
            actual[path] = git.read_file(path)

        ahead, _behind = git.ahead_behind(instance.upstream_ref)
        other_changes = git.is_dirty() or ahead > 0
        verdict = classify(
            expected,
            actual,
            policy=self.policy,
            other_changes=other_changes,
        )
        log.debug(
            "Conflict verdict for %s chapter %s: %s", instance.id, chapter.index + 1, verdict
        )
        return verdict
