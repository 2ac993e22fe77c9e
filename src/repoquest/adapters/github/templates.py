"""Read files from a quest template repository through the GitHub contents API.

Template refs are published once per quest release, so these reads go through
the cached resilience profile.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from repoquest.adapters.http_resilience import ResilientClient
from repoquest.domain.errors import RemoteUnavailable

from .schema import ContentPayload

if TYPE_CHECKING:
    from collections.abc import Callable

    from repoquest.config.github import GitHubConfig
    from repoquest.config.http_resilience import ResilienceConfig
    from repoquest.domain.model import RepositoryRef

log = getLogger(__name__)


class GitHubTemplateReader:
    def __init__(
        self,
        *,
        config: GitHubConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._resilience = config.template_resilience
        self._client_factory = client_factory or ResilientClient

    def read_file(self, repository: RepositoryRef, path: str, *, ref: str) -> str | None:
        """Return the text of ``path`` at ``ref``, or ``None`` when it does not exist."""

        return asyncio.run(self._read_file_async(repository, path, ref=ref))

    async def _read_file_async(
        self,
        repository: RepositoryRef,
        path: str,
        *,
        ref: str,
    ) -> str | None:
        url = f"/repos/{repository.owner}/{repository.name}/contents/{path.lstrip('/')}"
        async with self._client_factory(self._resilience) as client:
            try:
                response = await client.get(url, params={"ref": ref})
            except httpx.HTTPError as exc:
                raise RemoteUnavailable(f"Could not read {path} from {repository}") from exc

        if response.status_code == 404:
            log.debug("%s has no %s at %s", repository, path, ref)
            return None
        if response.status_code >= 400:
            raise RemoteUnavailable(
                f"Reading {path} from {repository}@{ref} returned {response.status_code}"
            )
        try:
            content = ContentPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise RemoteUnavailable(f"Unexpected contents payload for {path}") from exc
        if content.type != "file":
            return None
        return content.decoded()
