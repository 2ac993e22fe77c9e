from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from repoquest.app import open_session
from repoquest.config import ConfigurationError, configure_logging
from repoquest.domain.errors import QuestError
from repoquest.domain.orchestration import PollStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from repoquest.app import QuestSession
    from repoquest.domain.orchestration import PollOutcome, QuestStatus

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo",
        type=Path,
        default=Path(),
        help="Path to the local quest clone (default: current directory)",
    )
    common.add_argument(
        "--quest-file",
        type=Path,
        help="Read the quest package from this rqst.toml instead of the meta branch",
    )
    common.add_argument(
        "--template",
        type=str,
        help="owner/name of the template repository, used when the clone has no package",
    )
    common.add_argument(
        "--repository",
        type=str,
        help="owner/name of the learner repository (defaults to the origin remote)",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    parser = argparse.ArgumentParser(description="Drive a RepoQuest through GitHub")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("status", parents=[common], help="Show the current chapter and phase")
    subparsers.add_parser("poll", parents=[common], help="Run one reconciliation cycle")
    watch = subparsers.add_parser("watch", parents=[common], help="Poll until interrupted")
    watch.add_argument(
        "--interval",
        type=float,
        help="Seconds between polls (defaults to REPOQUEST_POLL_INTERVAL)",
    )
    subparsers.add_parser(
        "solution",
        parents=[common],
        help="File the reference solution for the current chapter",
    )
    subparsers.add_parser("ack", parents=[common], help="Clear a halt without polling")

    args = parser.parse_args(list(argv))
    if getattr(args, "interval", None) is not None and args.interval <= 0:
        parser.error("--interval must be positive")
    return args


def _format_status(status: QuestStatus, session: QuestSession) -> str:
    quest = session.instance.quest
    if status.finished:
        headline = f"{quest.title}: finished"
    else:
        chapter = quest.chapter(status.chapter_index)
        headline = (
            f"{quest.title}: chapter {chapter.index + 1}/{len(quest)} "
            f"{chapter.title!r} ({status.phase})"
        )
    lines = [headline]
    if status.last_verdict is not None:
        lines.append(f"  working copy: {status.last_verdict}")
    if status.halted:
        lines.append("  polling halted; run `repoquest ack` or `repoquest poll` to resume")
    if status.last_error:
        lines.append(f"  last error: {status.last_error}")
    lines.extend(f"  - {note}" for note in status.notes)
    return "\n".join(lines)


def _report(outcome: PollOutcome, session: QuestSession) -> int:
    status = session.orchestrator.current_state(session.instance.id)
    print(_format_status(status, session))  # noqa: T201
    if outcome.status is PollStatus.HALTED:
        return EXIT_FAILURE
    return EXIT_OK


def _watch(session: QuestSession, interval: float | None) -> int:
    orchestrator = session.orchestrator
    last_seen: list[QuestStatus] = []

    def on_status(status: QuestStatus) -> None:
        if last_seen and last_seen[-1] == status:
            return
        last_seen[:] = [status]
        print(_format_status(status, session), flush=True)  # noqa: T201

    unsubscribe = orchestrator.subscribe(on_status)
    stop_event = threading.Event()
    try:
        orchestrator.run_forever(
            [session.instance.id],
            interval=interval or session.config.poll_interval_seconds,
            stop_event=stop_event,
        )
    finally:
        stop_event.set()
        unsubscribe()
    return EXIT_OK


def _run_command(args: argparse.Namespace, session: QuestSession) -> int:
    orchestrator = session.orchestrator
    instance_id = session.instance.id
    match args.command:
        case "status":
            status = orchestrator.current_state(instance_id)
            print(_format_status(status, session))  # noqa: T201
            return EXIT_OK
        case "poll":
            return _report(orchestrator.trigger_poll(instance_id, manual=True), session)
        case "solution":
            return _report(orchestrator.request_reference_solution(instance_id), session)
        case "ack":
            status = orchestrator.acknowledge(instance_id)
            print(_format_status(status, session))  # noqa: T201
            return EXIT_OK
        case "watch":
            return _watch(session, args.interval)
        case _:
            raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        session = open_session(
            parsed_args.repo,
            quest_file=parsed_args.quest_file,
            template=parsed_args.template,
            repository=parsed_args.repository,
        )
    except (ConfigurationError, QuestError, ValueError):
        log.exception("Could not open the quest")
        sys.exit(EXIT_USAGE)

    try:
        code = _run_command(parsed_args, session)
    except Exception:
        log.exception("Fatal error while running %s", parsed_args.command)
        sys.exit(EXIT_FAILURE)
    if code != EXIT_OK:
        sys.exit(code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
