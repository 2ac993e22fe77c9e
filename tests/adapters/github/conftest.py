"""Shared fixtures for GitHub adapter tests."""

from __future__ import annotations

import pytest

from repoquest.config import GitHubConfig, ResilienceConfig, RetryPolicy
from repoquest.domain.model import RepositoryRef
from tests.helpers.github import API_URL


@pytest.fixture
def github_config() -> GitHubConfig:
    resilience = ResilienceConfig(
        name="github-test",
        base_url=API_URL,
        retry=RetryPolicy(total=0),
        cache=None,
    )
    return GitHubConfig(
        token="test-token",  # noqa: S106
        resilience=resilience,
        template_resilience=resilience,
    )


@pytest.fixture
def repository() -> RepositoryRef:
    return RepositoryRef(owner="learner", name="parser-quest")
