"""Public interface for the GitHub adapter."""

from __future__ import annotations

from .client import GitHubForge
from .schema import IssuePayload, PullPayload
from .templates import GitHubTemplateReader
from .translator import parse_issue, parse_pull

__all__ = [
    "GitHubForge",
    "GitHubTemplateReader",
    "IssuePayload",
    "PullPayload",
    "parse_issue",
    "parse_pull",
]
