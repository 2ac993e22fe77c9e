"""GitHub configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from .env import require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy

if TYPE_CHECKING:
    import httpx

log = getLogger(__name__)

DEFAULT_GITHUB_API_URL = "https://api.github.com"
GITHUB_TIMEOUT_SECONDS = 15.0
GITHUB_API_VERSION = "2022-11-28"
RATELIMIT_WARNING_THRESHOLD = 50


@dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Holds GitHub API configuration values."""

    token: str
    resilience: ResilienceConfig
    # Template reads hit immutable refs, so they may go through the HTTP cache.
    template_resilience: ResilienceConfig


def _headers(token: str) -> dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": "repoquest",
    }


async def warn_on_low_ratelimit(response: httpx.Response) -> None:
    """Log when the token is close to exhausting its primary rate limit."""

    remaining = response.headers.get("X-RateLimit-Remaining")
    if remaining is None or not remaining.isdigit():
        return
    if int(remaining) < RATELIMIT_WARNING_THRESHOLD:
        log.warning(
            "GitHub rate limit nearly exhausted: %s requests left until %s",
            remaining,
            response.headers.get("X-RateLimit-Reset", "unknown"),
        )


def get_github_config(*, resilience: ResilienceConfig | None = None) -> GitHubConfig:
    values = require_env_vars(("GITHUB_TOKEN",))
    token = values["GITHUB_TOKEN"]
    api_url = os.getenv("REPOQUEST_GITHUB_API_URL") or DEFAULT_GITHUB_API_URL
    headers = _headers(token)
    live = resilience or ResilienceConfig(
        name="github",
        base_url=api_url,
        timeout_seconds=GITHUB_TIMEOUT_SECONDS,
        retry=RetryPolicy(total=3),
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        # Issue and pull state must be read fresh every poll.
        cache=None,
        default_headers=headers,
        response_hooks=(warn_on_low_ratelimit,),
    )
    template = ResilienceConfig(
        name="github-template",
        base_url=api_url,
        timeout_seconds=GITHUB_TIMEOUT_SECONDS,
        retry=RetryPolicy(total=3),
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        cache=CacheConfig(enabled=True, backend="sqlite"),
        default_headers=headers,
        response_hooks=(warn_on_low_ratelimit,),
    )
    return GitHubConfig(token=token, resilience=live, template_resilience=template)
