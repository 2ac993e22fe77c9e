from __future__ import annotations

from repoquest.ui.cli import run

if __name__ == "__main__":
    run()
