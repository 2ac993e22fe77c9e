"""Local git operations on the learner's clone.

Reads shell out to ``git`` in the clone itself. Branch preparation never
touches the learner's checkout: each branch is assembled in a temporary
worktree, pushed to ``origin``, and the worktree is removed again.

Starter branches replay the template commits ``since_ref..source_ref`` on top
of the learner's default branch. When the replay conflicts it is aborted and
the branch instead carries one commit that replaces the tree with
``source_ref`` (reported as ``MergeType.SOLUTION_RESET``).
"""

from __future__ import annotations

import re
import subprocess
import tempfile
from contextlib import contextmanager
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from repoquest.domain.errors import LocalUnavailable
from repoquest.domain.model import MergeType, RepositoryRef
from repoquest.domain.ports import PreparedBranch

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from repoquest.domain.model import QuestInstance
    from repoquest.domain.ports import LocalGit

log = getLogger(__name__)

ORIGIN = "origin"
_REMOTE_PATTERN = re.compile(
    r"(?:[:/])(?P<owner>[A-Za-z0-9_.-]+)/(?P<name>[A-Za-z0-9_.-]+?)(?:\.git)?/?$"
)
_OVERRIDE_MESSAGES = {
    MergeType.SUCCESS: "Starter code",
    MergeType.STARTER_RESET: "Restore starter code",
    MergeType.SOLUTION_RESET: "Override with reference solution",
}


class GitClient:
    def __init__(self, path: Path, *, remote: str = ORIGIN) -> None:
        self.path = path
        self.remote = remote

    # -- reads --------------------------------------------------------------------

    def head_commit(self) -> str:
        return self._git(["rev-parse", "HEAD"]).strip()

    def read_file(self, path: str, *, ref: str | None = None) -> str | None:
        if ref is None:
            target = self.path / path
            try:
                return target.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except (OSError, UnicodeDecodeError) as exc:
                raise LocalUnavailable(f"Could not read {target}: {exc}") from exc

        object_name = f"{ref}:{path}"
        if self._run(["cat-file", "-e", object_name], check=False).returncode != 0:
            return None
        return self._git(["cat-file", "-p", object_name])

    def is_dirty(self) -> bool:
        return bool(self._git(["status", "--porcelain"]).strip())

    def ahead_behind(self, ref: str) -> tuple[int, int]:
        out = self._git(["rev-list", "--left-right", "--count", f"HEAD...{ref}"]).split()
        try:
            ahead, behind = (int(value) for value in out)
        except ValueError as exc:
            raise LocalUnavailable(f"rev-list returned unexpected output: {out!r}") from exc
        return ahead, behind

    def fetch(self, remote: str = ORIGIN) -> None:
        self._git(["fetch", "--quiet", "--prune", remote])

    def remote_url(self, remote: str = ORIGIN) -> str:
        return self._git(["remote", "get-url", remote]).strip()

    # -- branch preparation -------------------------------------------------------

    def prepare_branch(
        self,
        branch: str,
        *,
        base: str,
        source_ref: str,
        since_ref: str | None = None,
    ) -> PreparedBranch:
        with self._worktree(branch, base) as worktree:
            if since_ref is None:
                merge_type = MergeType.SUCCESS
                message = _OVERRIDE_MESSAGES[MergeType.SUCCESS]
                self._override(worktree, base, source_ref, message=message)
            else:
                merge_type = self._cherry_pick(worktree, base, since_ref, source_ref)
            return self._publish(worktree, branch, merge_type)

    def prepare_override_branch(
        self,
        branch: str,
        *,
        base: str,
        source_ref: str,
        merge_type: MergeType,
    ) -> PreparedBranch:
        with self._worktree(branch, base) as worktree:
            self._override(worktree, base, source_ref, message=_OVERRIDE_MESSAGES[merge_type])
            return self._publish(worktree, branch, merge_type)

    def _cherry_pick(self, worktree: Path, base: str, since_ref: str, source_ref: str) -> MergeType:
        picked = self._run(["cherry-pick", f"{since_ref}..{source_ref}"], cwd=worktree, check=False)
        if picked.returncode == 0:
            return MergeType.SUCCESS
        log.warning(
            "Cherry-picking %s..%s conflicted, overriding with %s: %s",
            since_ref,
            source_ref,
            source_ref,
            picked.stderr.strip(),
        )
        self._git(["cherry-pick", "--abort"], cwd=worktree)
        self._override(
            worktree,
            base,
            source_ref,
            message=_OVERRIDE_MESSAGES[MergeType.SOLUTION_RESET],
        )
        return MergeType.SOLUTION_RESET

    def _override(self, worktree: Path, base: str, source_ref: str, *, message: str) -> None:
        # One commit on top of base whose tree is exactly source_ref.
        self._git(["reset", "--hard", source_ref], cwd=worktree)
        self._git(["reset", "--soft", base], cwd=worktree)
        self._git(["commit", "--allow-empty", "--no-verify", "-m", message], cwd=worktree)

    def _publish(self, worktree: Path, branch: str, merge_type: MergeType) -> PreparedBranch:
        self._git(["push", "--quiet", "-u", self.remote, f"HEAD:refs/heads/{branch}"], cwd=worktree)
        head = self._git(["rev-parse", "HEAD"], cwd=worktree).strip()
        log.info("Pushed %s at %s (%s)", branch, head[:12], merge_type)
        return PreparedBranch(branch=branch, head=head, merge_type=merge_type)

    @contextmanager
    def _worktree(self, branch: str, base: str) -> Iterator[Path]:
        with tempfile.TemporaryDirectory(prefix="repoquest-") as scratch:
            worktree = Path(scratch) / "worktree"
            self._git(["worktree", "add", "--force", "-B", branch, str(worktree), base])
            try:
                yield worktree
            finally:
                self._run(["worktree", "remove", "--force", str(worktree)], check=False)
                self._run(["branch", "-D", branch], check=False)

    # -- plumbing -----------------------------------------------------------------

    def _git(self, args: Sequence[str], *, cwd: Path | None = None) -> str:
        completed = self._run(args, cwd=cwd, check=True)
        return completed.stdout

    def _run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool,
    ) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        try:
            return subprocess.run(  # noqa: S603
                command,
                cwd=cwd or self.path,
                text=True,
                check=check,
                capture_output=True,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise LocalUnavailable(f"git {' '.join(args)} failed: {stderr}") from exc
        except OSError as exc:
            raise LocalUnavailable(f"Could not run git in {self.path}: {exc}") from exc


def git_client_for(instance: QuestInstance) -> GitClient:
    """``GitFactory`` for clones on the local filesystem."""

    return GitClient(instance.path)


def repository_from_remote(url: str) -> RepositoryRef:
    """Parse ``owner/name`` from an ssh or https remote URL."""

    match = _REMOTE_PATTERN.search(url.strip())
    if match is None:
        raise ValueError(f"Cannot tell the repository from remote URL {url!r}")
    return RepositoryRef(owner=match.group("owner"), name=match.group("name"))


if TYPE_CHECKING:
    _git_check: LocalGit = GitClient(Path())
