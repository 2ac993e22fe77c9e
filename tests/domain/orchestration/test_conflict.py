from __future__ import annotations

import pytest

from repoquest.domain.model import ConflictVerdict, WhitespacePolicy
from repoquest.domain.orchestration import ConflictDetector, classify, compare_file, mask_game_areas
from repoquest.domain.orchestration.conflict import acceptable_owners
from tests.helpers.fakes import FakeGit
from tests.helpers.quests import GAME_FILE, make_chapter, make_instance, make_quest

STARTER = """\
import sys

def solve():
    # rq:begin-game-area
    raise NotImplementedError
    # rq:end-game-area

def main():
    solve()
"""

SOLVED = STARTER.replace("raise NotImplementedError", "return 42\n    # more work")
TAMPERED = STARTER.replace("def main():", "def main(argv):")


def test_mask_game_areas_replaces_learner_code() -> None:
    masked = mask_game_areas(SOLVED)

    assert "return 42" not in masked
    assert "# rq:begin-game-area" in masked
    assert "# rq:end-game-area" in masked
    assert masked == mask_game_areas(STARTER)


def test_unterminated_game_area_runs_to_end_of_file() -> None:
    text = "head\n# rq:begin-game-area\nbody\ntail\n"

    assert mask_game_areas(text).splitlines() == [
        "head",
        "# rq:begin-game-area",
        "\x00game-area\x00",
    ]


@pytest.mark.parametrize(
    ("actual", "expected_verdict"),
    [
        (STARTER, ConflictVerdict.CLEAN),
        (SOLVED, ConflictVerdict.GAME_AREA_ONLY),
        (TAMPERED, ConflictVerdict.DRIFTED),
        (STARTER.replace("    # rq:end-game-area\n", ""), ConflictVerdict.DRIFTED),
    ],
)
def test_compare_file(actual: str, expected_verdict: ConflictVerdict) -> None:
    assert compare_file(STARTER, actual) is expected_verdict


def test_whitespace_policy_controls_trailing_spaces() -> None:
    padded = STARTER.replace("import sys", "import sys   ")

    assert compare_file(STARTER, padded) is ConflictVerdict.GAME_AREA_ONLY
    assert compare_file(STARTER, padded, policy=WhitespacePolicy.STRICT) is ConflictVerdict.DRIFTED


def test_ignore_all_whitespace_accepts_reindented_code() -> None:
    reindented = STARTER.replace("    solve()", "\tsolve()")

    verdict = compare_file(STARTER, reindented, policy=WhitespacePolicy.IGNORE_ALL)

    assert verdict is ConflictVerdict.GAME_AREA_ONLY


def test_classify_reports_missing_protected_file() -> None:
    verdict = classify({GAME_FILE: [STARTER]}, {GAME_FILE: None})

    assert verdict is ConflictVerdict.DRIFTED


def test_classify_accepts_any_listed_version() -> None:
    newer = STARTER.replace("import sys", "import os")

    verdict = classify({GAME_FILE: [STARTER, newer]}, {GAME_FILE: newer})

    assert verdict is ConflictVerdict.CLEAN


def test_classify_counts_edits_outside_protected_files() -> None:
    verdict = classify({GAME_FILE: [STARTER]}, {GAME_FILE: STARTER}, other_changes=True)

    assert verdict is ConflictVerdict.GAME_AREA_ONLY


def test_classify_without_protected_files_is_clean() -> None:
    assert classify({}, {}) is ConflictVerdict.CLEAN


def test_acceptable_owners_follow_the_baseline() -> None:
    quest = make_quest()
    last = quest.chapter(2)

    assert acceptable_owners(quest, last, None) == {}
    assert [c.index for c in acceptable_owners(quest, last, 0)[GAME_FILE]] == [0, 1, 2]
    assert [c.index for c in acceptable_owners(quest, last, 1)[GAME_FILE]] == [1, 2]


def test_acceptable_owners_skip_paths_not_landed_yet() -> None:
    quest = make_quest(
        make_chapter(0, protected=("src/a.py",)),
        make_chapter(1, protected=("src/b.py",)),
    )

    owners = acceptable_owners(quest, quest.chapter(1), 0)

    assert set(owners) == {"src/a.py"}


def _git_with(content: str | None, **state: object) -> FakeGit:
    git = FakeGit(refs={"upstream/01-a": {GAME_FILE: STARTER}}, **state)  # type: ignore[arg-type]
    if content is not None:
        git.files[GAME_FILE] = content
    return git


@pytest.mark.parametrize(
    ("content", "expected_verdict"),
    [
        (STARTER, ConflictVerdict.CLEAN),
        (SOLVED, ConflictVerdict.GAME_AREA_ONLY),
        (TAMPERED, ConflictVerdict.DRIFTED),
        (None, ConflictVerdict.DRIFTED),
    ],
)
def test_detector_reads_template_and_working_copy(
    content: str | None, expected_verdict: ConflictVerdict
) -> None:
    instance = make_instance()
    git = _git_with(content)
    detector = ConflictDetector(git.for_instance)

    verdict = detector.evaluate(instance, instance.quest.chapter(0), baseline=0)

    assert verdict is expected_verdict


def test_detector_ignores_unlanded_starter() -> None:
    instance = make_instance()
    detector = ConflictDetector(_git_with(TAMPERED).for_instance)

    verdict = detector.evaluate(instance, instance.quest.chapter(0), baseline=None)

    assert verdict is ConflictVerdict.CLEAN


def test_detector_counts_local_commits_as_outside_edits() -> None:
    instance = make_instance()
    detector = ConflictDetector(_git_with(STARTER, ahead=2).for_instance)

    verdict = detector.evaluate(instance, instance.quest.chapter(0), baseline=0)

    assert verdict is ConflictVerdict.GAME_AREA_ONLY
