"""Shared pytest fixtures: fake aiohttp sessions, fast retries, storage."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

import pytest

from core.models.entity import ProviderName
from core.observability.metrics import MetricsCollector
from core.storage.memory import InMemoryStorageAdapter
from core.utils.rate_limiter import RateLimitConfig
from core.utils.retry import RetryOptions
from providers.fortnox import FortnoxClient, FortnoxProvider
from providers.registry import ProviderRegistry
from providers.visma import VismaClient, VismaProvider


# Large enough that tests never wait on the limiter
UNLIMITED = RateLimitConfig(max_requests=10_000, window_ms=1000)


# =============================================================================
# Fake aiohttp
# =============================================================================

class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside `async with`."""

    def __init__(self, status: int = 200, body: Union[str, bytes] = "", reason: Optional[str] = None):
        self.status = status
        self.reason = reason or {200: "OK", 401: "Unauthorized", 404: "Not Found",
                                 429: "Too Many Requests", 500: "Internal Server Error",
                                 503: "Service Unavailable"}.get(status, "")
        self._body = body.encode("utf-8") if isinstance(body, str) else body

    async def text(self) -> str:
        return self._body.decode("utf-8", errors="replace")

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def json_response(payload: Any, status: int = 200) -> FakeResponse:
    return FakeResponse(status=status, body=json.dumps(payload))


def error_response(status: int, message: str = "error") -> FakeResponse:
    return FakeResponse(status=status, body=json.dumps({"ErrorInformation": {"message": message}}))


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: Dict[str, str]
    params: Dict[str, str]
    json: Any

    @property
    def path(self) -> str:
        return urlparse(self.url).path


Reply = Union[FakeResponse, BaseException]


@dataclass
class FakeSession:
    """Replays scripted replies and records every request.

    Either give a flat list of replies (served in order) or a handler
    called with each RecordedRequest.
    """
    replies: List[Reply] = field(default_factory=list)
    handler: Optional[Callable[[RecordedRequest], Reply]] = None
    requests: List[RecordedRequest] = field(default_factory=list)
    closed: bool = False

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        recorded = RecordedRequest(method, url, dict(headers or {}), dict(params or {}), json)
        self.requests.append(recorded)
        reply = self.handler(recorded) if self.handler else self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def close(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fast_retry() -> RetryOptions:
    return RetryOptions(max_attempts=3, initial_delay_ms=0, max_delay_ms=0)


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def storage() -> InMemoryStorageAdapter:
    return InMemoryStorageAdapter()


@pytest.fixture
def make_fortnox(fast_retry, metrics):
    def _make(session: FakeSession) -> FortnoxProvider:
        client = FortnoxClient(
            "https://fortnox.test/3",
            rate_limit=UNLIMITED,
            retry_options=fast_retry,
            session=session,
            metrics=metrics,
        )
        return FortnoxProvider(client)
    return _make


@pytest.fixture
def make_visma(fast_retry, metrics):
    def _make(session: FakeSession) -> VismaProvider:
        client = VismaClient(
            "https://visma.test/v2",
            rate_limit=UNLIMITED,
            retry_options=fast_retry,
            session=session,
            metrics=metrics,
        )
        return VismaProvider(client)
    return _make


@pytest.fixture
def make_registry(make_fortnox, make_visma):
    """Registry whose adapters all talk to one FakeSession."""
    def _make(session: FakeSession) -> ProviderRegistry:
        return ProviderRegistry({
            ProviderName.FORTNOX: lambda: make_fortnox(session),
            ProviderName.VISMA: lambda: make_visma(session),
        })
    return _make
