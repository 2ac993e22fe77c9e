"""Root logger setup for the CLI."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Configure the root logger for terminal output.

    ``force=True`` replaces handlers installed earlier, e.g. by a test runner.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=force)
    # One INFO line per request would bury the poll output.
    for noisy in ("httpx", "hishel"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
