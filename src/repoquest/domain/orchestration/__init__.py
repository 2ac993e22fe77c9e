"""Poll-driven reconciliation of quest progress against remote and local state."""

from __future__ import annotations

from .conflict import ConflictDetector, classify, compare_file, mask_game_areas
from .dispatcher import ActionDispatcher, DispatchResult
from .engine import PollOutcome, PollStatus, QuestOrchestrator, QuestStatus
from .local_reader import LocalStateReader
from .remote_reader import RemoteStateReader
from .state_machine import QuestStateMachine

__all__ = [
    "ActionDispatcher",
    "ConflictDetector",
    "DispatchResult",
    "LocalStateReader",
    "PollOutcome",
    "PollStatus",
    "QuestOrchestrator",
    "QuestStateMachine",
    "QuestStatus",
    "RemoteStateReader",
    "classify",
    "compare_file",
    "mask_game_areas",
]
