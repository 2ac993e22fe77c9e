from __future__ import annotations

from pathlib import Path

from repoquest.domain.model import (
    Chapter,
    ChapterPhase,
    IssueTemplate,
    ProgressRecord,
    Quest,
    QuestInstance,
    RepositoryRef,
)

INSTANCE_ID = "learner/parser-quest"
GAME_FILE = "src/game.py"


def make_chapter(
    index: int,
    *,
    starter: bool = True,
    solution: bool = True,
    protected: tuple[str, ...] = (GAME_FILE,),
) -> Chapter:
    number = index + 1
    return Chapter(
        index=index,
        label=f"chapter-{number}",
        title=f"Chapter {number}",
        issue=IssueTemplate(title=f"Chapter {number}", body=f"Do part {number}."),
        starter_ref=f"{number:02d}-a" if starter else None,
        solution_ref=f"{number:02d}-b" if solution else None,
        protected_paths=protected if starter else (),
    )


def make_quest(*chapters: Chapter, count: int = 3) -> Quest:
    if not chapters:
        chapters = tuple(make_chapter(index) for index in range(count))
    return Quest(
        title="Parser Quest",
        template=RepositoryRef(owner="quests", name="parser-template"),
        chapters=tuple(chapters),
    )


def make_instance(quest: Quest | None = None, *, path: Path | None = None) -> QuestInstance:
    owner, name = INSTANCE_ID.split("/")
    return QuestInstance(
        id=INSTANCE_ID,
        path=path or Path("/tmp/parser-quest"),  # noqa: S108
        repository=RepositoryRef(owner=owner, name=name),
        quest=quest or make_quest(),
    )


def make_record(
    *,
    chapter_index: int = 0,
    phase: ChapterPhase = ChapterPhase.NOT_STARTED,
    revision: int = 0,
    **fields: object,
) -> ProgressRecord:
    return ProgressRecord(
        instance_id=INSTANCE_ID,
        chapter_index=chapter_index,
        phase=phase,
        revision=revision,
        **fields,  # type: ignore[arg-type]
    )
