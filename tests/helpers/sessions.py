from __future__ import annotations

from typing import TYPE_CHECKING

from repoquest.app import open_session
from repoquest.config import OrchestratorConfig
from tests.helpers.quests import INSTANCE_ID

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from repoquest.app import QuestSession
    from tests.helpers.fakes import FakeForge, FakeGit, InMemoryUnitOfWork

QUEST_TOML = """\
title = "Parser Quest"
template = "quests/parser-template"

[[chapters]]
label = "chapter-1"
title = "Tokens"
starter_ref = "01-a"
solution_ref = "01-b"
protected_paths = ["src/game.py"]

[chapters.issue]
title = "Chapter 1: Tokens"
body = "Split the input into tokens."

[[chapters]]
label = "chapter-2"
title = "Trees"
starter_ref = "02-a"
solution_ref = "02-b"

[chapters.issue]
title = "Chapter 2: Trees"
"""


def write_quest_file(directory: Path) -> Path:
    path = directory / "rqst.toml"
    path.write_text(QUEST_TOML, encoding="utf-8")
    return path


def open_fake_session(
    directory: Path,
    *,
    forge: FakeForge,
    git: FakeGit,
    uow_factory: Callable[[], InMemoryUnitOfWork],
) -> QuestSession:
    return open_session(
        directory,
        quest_file=write_quest_file(directory),
        repository=INSTANCE_ID,
        config=OrchestratorConfig(poll_interval_seconds=0.01),
        forge=forge,
        git_factory=git.for_instance,
        unit_of_work_factory=uow_factory,
    )
