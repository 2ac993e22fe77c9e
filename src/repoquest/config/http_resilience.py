"""Retry, rate-limit and cache settings shared by the forge HTTP clients."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

import httpx
from httpx_retries import Retry

from .errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

ResponseHook = Callable[[httpx.Response], Awaitable[None]]

# Every forge write is looked up by its action key before it is created again,
# so POST/PATCH/PUT may be retried like reads.
_RETRYABLE_METHODS = frozenset({"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"})
_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_TRANSIENT_ERRORS: tuple[type[httpx.HTTPError], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Transport-level retries. ``total=0`` disables them."""

    total: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 60.0
    backoff_jitter: float = 1.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = _RETRYABLE_METHODS
    status_forcelist: frozenset[int] = _RETRYABLE_STATUSES
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = _TRANSIENT_ERRORS

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ConfigurationError("Retry total must be non-negative")
        if self.backoff_factor < 0 or self.max_backoff_wait < 0:
            raise ConfigurationError("Retry backoff must be non-negative")

    def build(self) -> Retry:
        return Retry(
            total=self.total,
            backoff_factor=self.backoff_factor,
            max_backoff_wait=self.max_backoff_wait,
            backoff_jitter=self.backoff_jitter,
            respect_retry_after_header=self.respect_retry_after_header,
            allowed_methods=sorted(self.allowed_methods),
            status_forcelist=sorted(self.status_forcelist),
            retry_on_exceptions=self.retry_on_exceptions,
        )


@dataclass(slots=True, frozen=True)
class RateLimit:
    """At most ``max_calls`` requests per ``per_seconds`` window."""

    max_calls: int
    per_seconds: float

    def __post_init__(self) -> None:
        if self.max_calls <= 0 or self.per_seconds <= 0:
            raise ConfigurationError("Rate limit needs positive calls and window")


@dataclass(slots=True, frozen=True)
class CacheConfig:
    enabled: bool = True
    backend: Literal["sqlite", "memory"] = "memory"
    # Falls back to the data directory's HTTP cache file.
    sqlite_path: str | None = None
    default_ttl_seconds: float | None = None
    refresh_ttl_on_access: bool = True


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    """Everything ``ResilientClient`` needs to talk to one HTTP service."""

    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = field(default_factory=CacheConfig)
    response_hooks: tuple[ResponseHook, ...] = ()
    default_headers: Mapping[str, str] | None = None
