"""Public interface for the local git adapter."""

from __future__ import annotations

from .client import GitClient, git_client_for, repository_from_remote

__all__ = ["GitClient", "git_client_for", "repository_from_remote"]
