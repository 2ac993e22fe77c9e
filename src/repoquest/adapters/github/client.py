"""GitHub REST client implementing the forge port."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from repoquest.adapters.http_resilience import ResilientClient
from repoquest.domain.errors import (
    ActionConflict,
    ActionFatal,
    ArtifactExists,
    ArtifactNotFound,
    RemoteUnavailable,
)

from .schema import (
    BranchPayload,
    ErrorPayload,
    IssuePayload,
    LabelPayload,
    MergeResultPayload,
    PullPayload,
)
from .translator import parse_issue, parse_pull

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from repoquest.config.github import GitHubConfig
    from repoquest.config.http_resilience import ResilienceConfig
    from repoquest.domain.model import IssueSnapshot, PullSnapshot, RepositoryRef
    from repoquest.domain.ports import ForgeClient

log = getLogger(__name__)

PAGE_SIZE = 100
MAX_PAGES = 20

_UNAVAILABLE_STATUSES = frozenset({401, 403, 429})


class GitHubForge:
    """Synchronous facade over the GitHub REST API.

    Every call runs its own event loop and client, matching the rest of the
    adapter layer. Responses map onto the domain error taxonomy: transport
    failures, rate limits and server errors become ``RemoteUnavailable``.
    """

    def __init__(
        self,
        *,
        config: GitHubConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient

    # -- issues -------------------------------------------------------------------

    def get_issue(self, repository: RepositoryRef, number: int) -> IssueSnapshot:
        payload = asyncio.run(self._request_json("GET", _repo_path(repository, f"issues/{number}")))
        issue = _validate(IssuePayload, payload)
        if issue.is_pull_request:
            raise ArtifactNotFound(f"#{number} in {repository} is a pull request, not an issue")
        return parse_issue(issue)

    def list_issues(self, repository: RepositoryRef) -> Sequence[IssueSnapshot]:
        items = asyncio.run(self._paginate(_repo_path(repository, "issues"), {"state": "all"}))
        issues = [_validate(IssuePayload, item) for item in items]
        return [parse_issue(issue) for issue in issues if not issue.is_pull_request]

    def create_issue(
        self,
        repository: RepositoryRef,
        *,
        title: str,
        body: str,
        labels: Sequence[str] = (),
    ) -> IssueSnapshot:
        payload = asyncio.run(
            self._request_json(
                "POST",
                _repo_path(repository, "issues"),
                json={"title": title, "body": body, "labels": list(labels)},
            )
        )
        issue = parse_issue(_validate(IssuePayload, payload))
        log.debug("Created issue #%s in %s", issue.number, repository)
        return issue

    def close_issue(self, repository: RepositoryRef, number: int) -> IssueSnapshot:
        payload = asyncio.run(
            self._request_json(
                "PATCH",
                _repo_path(repository, f"issues/{number}"),
                json={"state": "closed"},
            )
        )
        return parse_issue(_validate(IssuePayload, payload))

    # -- pull requests ------------------------------------------------------------

    def get_pull(self, repository: RepositoryRef, number: int) -> PullSnapshot:
        payload = asyncio.run(self._request_json("GET", _repo_path(repository, f"pulls/{number}")))
        return parse_pull(_validate(PullPayload, payload))

    def list_pulls(self, repository: RepositoryRef) -> Sequence[PullSnapshot]:
        items = asyncio.run(self._paginate(_repo_path(repository, "pulls"), {"state": "all"}))
        return [parse_pull(_validate(PullPayload, item)) for item in items]

    def create_pull(
        self,
        repository: RepositoryRef,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
        labels: Sequence[str] = (),
    ) -> PullSnapshot:
        return asyncio.run(
            self._create_pull_async(
                repository,
                title=title,
                body=body,
                head=head,
                base=base,
                labels=labels,
            )
        )

    def merge_pull(self, repository: RepositoryRef, number: int) -> PullSnapshot:
        payload = asyncio.run(
            self._request_json(
                "PUT",
                _repo_path(repository, f"pulls/{number}/merge"),
                json={"merge_method": "merge"},
            )
        )
        result = _validate(MergeResultPayload, payload)
        if not result.merged:
            raise ActionConflict(f"Pull request #{number} was not merged: {result.message}")
        log.debug("Merged pull request #%s in %s", number, repository)
        return self.get_pull(repository, number)

    # -- labels and branches ------------------------------------------------------

    def list_labels(self, repository: RepositoryRef, number: int) -> frozenset[str]:
        items = asyncio.run(self._paginate(_repo_path(repository, f"issues/{number}/labels"), {}))
        return frozenset(_validate(LabelPayload, item).name for item in items)

    def set_labels(self, repository: RepositoryRef, number: int, labels: Sequence[str]) -> None:
        asyncio.run(
            self._request_json(
                "PUT",
                _repo_path(repository, f"issues/{number}/labels"),
                json={"labels": list(labels)},
            )
        )

    def get_branch_head(self, repository: RepositoryRef, branch: str) -> str | None:
        try:
            payload = asyncio.run(
                self._request_json("GET", _repo_path(repository, f"branches/{branch}"))
            )
        except ArtifactNotFound:
            return None
        return _validate(BranchPayload, payload).commit.sha

    # -- transport ----------------------------------------------------------------

    async def _create_pull_async(
        self,
        repository: RepositoryRef,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
        labels: Sequence[str],
    ) -> PullSnapshot:
        async with self._client_factory(self._resilience) as client:
            payload = await self._perform_request(
                client,
                "POST",
                _repo_path(repository, "pulls"),
                json={"title": title, "body": body, "head": head, "base": base},
            )
            pull = _validate(PullPayload, payload)
            if labels:
                await self._perform_request(
                    client,
                    "POST",
                    _repo_path(repository, f"issues/{pull.number}/labels"),
                    json={"labels": list(labels)},
                )
                pull = pull.model_copy(
                    update={"labels": [LabelPayload(name=label) for label in labels]}
                )
        log.debug("Opened pull request #%s (%s -> %s) in %s", pull.number, head, base, repository)
        return parse_pull(pull)

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        json: object | None = None,
        params: dict[str, str] | None = None,
    ) -> object:
        async with self._client_factory(self._resilience) as client:
            return await self._perform_request(client, method, path, json=json, params=params)

    async def _paginate(self, path: str, params: dict[str, str]) -> list[object]:
        items: list[object] = []
        query = {**params, "per_page": str(PAGE_SIZE)}
        async with self._client_factory(self._resilience) as client:
            for page in range(1, MAX_PAGES + 1):
                payload = await self._perform_request(
                    client, "GET", path, params={**query, "page": str(page)}
                )
                if not isinstance(payload, list):
                    raise RemoteUnavailable(f"Expected a list from {path}")
                items.extend(payload)
                if len(payload) < PAGE_SIZE:
                    break
            else:
                log.warning("Stopped listing %s after %s pages", path, MAX_PAGES)
        return items

    async def _perform_request(
        self,
        client: ResilientClient,
        method: str,
        path: str,
        *,
        json: object | None = None,
        params: dict[str, str] | None = None,
    ) -> object:
        try:
            response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            raise RemoteUnavailable(f"GitHub timed out on {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"GitHub request {method} {path} failed: {exc}") from exc

        _raise_for_status(response, method, path)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"GitHub {method} {path} returned a non-JSON body") from exc


def _repo_path(repository: RepositoryRef, suffix: str) -> str:
    return f"/repos/{repository.owner}/{repository.name}/{suffix}"


def _validate[
    TModel: (IssuePayload, PullPayload, LabelPayload, BranchPayload, MergeResultPayload)
](
    model: type[TModel],
    payload: object,
) -> TModel:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise RemoteUnavailable(f"Unexpected GitHub payload for {model.__name__}") from exc


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    status = response.status_code
    if status < 400:
        return
    error = _error_payload(response)
    detail = f"GitHub {method} {path} returned {status}: {error.message or response.reason_phrase}"
    if status in {404, 410}:
        raise ArtifactNotFound(detail)
    if status == 422 and error.already_exists:
        raise ArtifactExists(detail)
    if status in {405, 409}:
        raise ActionConflict(detail)
    if status in _UNAVAILABLE_STATUSES or status >= 500:
        log.warning(detail)
        raise RemoteUnavailable(detail)
    raise ActionFatal(detail)


def _error_payload(response: httpx.Response) -> ErrorPayload:
    try:
        return ErrorPayload.model_validate(response.json())
    except (ValueError, ValidationError):
        return ErrorPayload(message=response.text[:200])


if TYPE_CHECKING:
    _forge_check: type[ForgeClient] = GitHubForge
