"""Async HTTP client for forge calls: retries, a request budget and an optional cache.

Retries happen in the transport (httpx-retries), so the rate limiter only
admits the logical request once. Caching goes through hishel and is enabled
per ``ResilienceConfig``; live issue and pull state never uses it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from logging import getLogger
from typing import TYPE_CHECKING, Any, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage
from hishel.httpx import AsyncCacheClient
from httpx_retries import RetryTransport

from repoquest.config.storage import get_http_cache_path

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from httpx._types import HeaderTypes, QueryParamTypes, URLTypes

    from repoquest.config.http_resilience import CacheConfig, RateLimit, ResilienceConfig

log = getLogger(__name__)


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    headers: HeaderTypes | None


class ResilientClient:
    """Per-service ``httpx.AsyncClient`` configured from a ``ResilienceConfig``."""

    def __init__(self, config: ResilienceConfig) -> None:
        self.config = config
        self._limiter = _build_limiter(config.ratelimit)
        self._client = _build_client(config)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        async with self._admitted():
            response = await self._client.request(method, url, **kwargs)
        log.debug("%s %s %s -> %s", self.config.name, method, url, response.status_code)
        return response

    async def get(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    @asynccontextmanager
    async def _admitted(self) -> AsyncIterator[None]:
        if self._limiter is None:
            yield
            return
        async with self._limiter:
            yield


def _build_limiter(ratelimit: RateLimit | None) -> AsyncLimiter | None:
    if ratelimit is None:
        return None
    return AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds)


def _build_client(config: ResilienceConfig) -> httpx.AsyncClient:
    options: dict[str, Any] = {
        "timeout": config.timeout_seconds,
        "transport": RetryTransport(retry=config.retry.build()),
    }
    if config.base_url is not None:
        options["base_url"] = config.base_url
    if config.default_headers:
        options["headers"] = dict(config.default_headers)
    if config.response_hooks:
        options["event_hooks"] = {"response": list(config.response_hooks)}

    storage = _build_cache_storage(config.cache)
    if storage is None:
        return httpx.AsyncClient(**options)
    log.debug("HTTP cache enabled for %s", config.name)
    return AsyncCacheClient(storage=storage, **options)


def _build_cache_storage(config: CacheConfig | None) -> AsyncSqliteStorage | None:
    if config is None or not config.enabled:
        return None
    match config.backend:
        case "memory":
            database_path = ":memory:"
        case "sqlite":
            database_path = config.sqlite_path or str(get_http_cache_path())
        case _:
            raise ValueError(f"Unsupported cache backend: {config.backend}")
    return AsyncSqliteStorage(
        database_path=database_path,
        default_ttl=config.default_ttl_seconds,
        refresh_ttl_on_access=config.refresh_ttl_on_access,
    )
