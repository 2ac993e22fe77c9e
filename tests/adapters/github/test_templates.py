from __future__ import annotations

import base64
from typing import TYPE_CHECKING

import httpx
import pytest

from repoquest.adapters.github import GitHubTemplateReader
from repoquest.domain.errors import RemoteUnavailable
from repoquest.domain.model import RepositoryRef
from tests.helpers.github import make_client_factory

if TYPE_CHECKING:
    from repoquest.config import GitHubConfig
    from tests.helpers.github import Handler

TEMPLATE = RepositoryRef(owner="quests", name="parser-template")


def _reader(config: GitHubConfig, handler: Handler) -> GitHubTemplateReader:
    return GitHubTemplateReader(config=config, client_factory=make_client_factory(handler))


def test_read_file_decodes_base64_content(github_config: GitHubConfig) -> None:
    text = 'title = "Parser Quest"\n'
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "type": "file",
                "path": "rqst.toml",
                "encoding": "base64",
                "content": base64.b64encode(text.encode()).decode(),
            },
        )

    content = _reader(github_config, handler).read_file(TEMPLATE, "rqst.toml", ref="meta")

    assert content == text
    assert seen[0].url.path == "/repos/quests/parser-template/contents/rqst.toml"
    assert seen[0].url.params["ref"] == "meta"


def test_missing_file_is_none(github_config: GitHubConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(404, json={"message": "Not Found"})

    assert _reader(github_config, handler).read_file(TEMPLATE, "rqst.toml", ref="meta") is None


def test_non_file_entries_are_none(github_config: GitHubConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(200, json={"type": "symlink", "path": "rqst.toml"})

    assert _reader(github_config, handler).read_file(TEMPLATE, "rqst.toml", ref="meta") is None


def test_server_errors_are_unavailable(github_config: GitHubConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(503, json={"message": "Unavailable"})

    with pytest.raises(RemoteUnavailable):
        _reader(github_config, handler).read_file(TEMPLATE, "rqst.toml", ref="meta")
